"""Value types exchanged between the export service and its renderers."""

from __future__ import annotations

import copy
import datetime as dt
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, get_args

from deck_export.config import coerce_float, coerce_int

ExportFormat = Literal["pdf", "html", "images", "markdown", "pptx"]
Quality = Literal["low", "medium", "high"]
PageSize = Literal["A4", "Letter", "Custom"]
Orientation = Literal["portrait", "landscape"]
ErrorType = Literal[
    "validation",
    "renderer",
    "browser",
    "filesystem",
    "timeout",
    "memory",
    "network",
    "configuration",
]

EXPORT_FORMATS: tuple[str, ...] = get_args(ExportFormat)
QUALITIES: tuple[str, ...] = get_args(Quality)
PAGE_SIZES: tuple[str, ...] = get_args(PageSize)
ORIENTATIONS: tuple[str, ...] = get_args(Orientation)
ERROR_TYPES: tuple[str, ...] = get_args(ErrorType)


@dataclass(slots=True)
class Slide:
    """A single slide whose HTML has already been rendered upstream."""

    html: str
    notes: str = ""
    title: str = ""
    index: int = 0


@dataclass(slots=True)
class Presentation:
    """Ordered slides plus the deck-level metadata needed for export."""

    title: str
    slides: list[Slide] = field(default_factory=list)
    author: str = ""
    date: dt.date | None = None
    theme: str = ""

    def single(self, slide: Slide) -> Presentation:
        """Return a copy of this presentation holding only ``slide``."""
        return Presentation(
            title=self.title,
            slides=[slide],
            author=self.author,
            date=self.date,
            theme=self.theme,
        )


@dataclass(frozen=True, slots=True)
class ExportOptions:
    """Immutable per-call export request.

    ``format`` and ``output_path`` are required; enum-like fields may be left
    empty to accept the renderer default. ``width``/``height`` only apply to
    the images format and override the quality tier dimensions when both are
    positive. ``compression`` rewrites PDF output with deflated streams and
    has no effect on the other formats. ``metadata`` is carried through
    untouched.
    """

    format: str
    output_path: str
    theme: str = ""
    include_notes: bool = False
    include_metadata: bool = False
    quality: str = ""
    page_size: str = ""
    orientation: str = ""
    compression: bool = False
    width: int | None = None
    height: int | None = None
    metadata: Mapping[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class FallbackInfo:
    """Record of a renderer switching to its local generator."""

    reason: str
    fallback_used: str
    timestamp: dt.datetime = field(default_factory=dt.datetime.now)


@dataclass(slots=True)
class ExportResult:
    """Outcome of an export, successful or not."""

    success: bool
    format: str = ""
    output_path: str = ""
    file_size: int = 0
    duration: str = ""
    page_count: int = 0
    files: list[str] = field(default_factory=list)
    error: str = ""
    warnings: list[str] = field(default_factory=list)
    generated_at: dt.datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    fallbacks: list[FallbackInfo] = field(default_factory=list)
    temp_files: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ExportMetrics:
    """Bookkeeping for one in-flight :meth:`ExportService.export` call."""

    start_time: dt.datetime = field(default_factory=dt.datetime.now)
    end_time: dt.datetime | None = None
    duration: float = 0.0
    retry_count: int = 0
    fallbacks_used: list[FallbackInfo] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    temp_files_created: list[str] = field(default_factory=list)

    @property
    def active(self) -> bool:
        """Return ``True`` while the export has not finished."""
        return self.end_time is None

    def finish(self) -> None:
        """Stamp the end time and duration."""
        self.end_time = dt.datetime.now()
        self.duration = (self.end_time - self.start_time).total_seconds()

    def duration_text(self) -> str:
        """Return the duration formatted like ``1.234s``."""
        return f"{self.duration:.3f}s"

    def snapshot(self) -> ExportMetrics:
        """Return an independent copy safe to embed in a result."""
        return copy.deepcopy(self)


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """Exponential backoff policy applied around renderer attempts."""

    max_retries: int = 3
    initial_delay_s: float = 1.0
    max_delay_s: float = 30.0
    backoff_factor: float = 2.0
    retryable_errors: frozenset[str] = frozenset(
        {"network", "timeout", "browser", "memory"}
    )

    @classmethod
    def from_mapping(cls, data: Mapping[str, object] | None) -> RetryConfig:
        """Create a :class:`RetryConfig` from a configuration mapping."""
        if not isinstance(data, Mapping):
            return cls()
        defaults = cls()
        raw_errors = data.get("retryable_errors")
        retryable = defaults.retryable_errors
        if isinstance(raw_errors, list | tuple | set | frozenset):
            retryable = frozenset(
                str(item).strip().lower()
                for item in raw_errors
                if str(item).strip().lower() in ERROR_TYPES
            )
        return cls(
            max_retries=coerce_int(data.get("max_retries"), defaults.max_retries),
            initial_delay_s=coerce_float(
                data.get("initial_delay_s"), defaults.initial_delay_s
            ),
            max_delay_s=coerce_float(data.get("max_delay_s"), defaults.max_delay_s),
            backoff_factor=coerce_float(
                data.get("backoff_factor"), defaults.backoff_factor, minimum=1.0
            ),
            retryable_errors=retryable,
        )

    def backoff_delay(self, attempt: int) -> float:
        """Return the delay in seconds before retry number ``attempt`` (1-based)."""
        if attempt < 1:
            return 0.0
        delay = self.initial_delay_s * self.backoff_factor ** (attempt - 1)
        return min(delay, self.max_delay_s)


__all__ = [
    "EXPORT_FORMATS",
    "ERROR_TYPES",
    "ORIENTATIONS",
    "PAGE_SIZES",
    "QUALITIES",
    "ErrorType",
    "ExportFormat",
    "ExportMetrics",
    "ExportOptions",
    "ExportResult",
    "FallbackInfo",
    "Orientation",
    "PageSize",
    "Presentation",
    "Quality",
    "RetryConfig",
    "Slide",
]
