"""Error taxonomy for the export pipeline.

Every failure that leaves :class:`deck_export.service.ExportService` is an
:class:`ExportError`. Failure sites that know their category construct one
directly; opaque errors (most notably those coming out of the headless
browser subprocess) are mapped onto the taxonomy by :func:`categorize_error`
using their message text.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from deck_export.models import ErrorType

if TYPE_CHECKING:
    from deck_export.models import ExportResult

DEFAULT_RETRYABLE: frozenset[str] = frozenset({"timeout", "browser", "memory", "network"})


class ExportError(RuntimeError):
    """Categorised export failure with machine readable metadata."""

    def __init__(
        self,
        error_type: ErrorType,
        message: str,
        *,
        details: str = "",
        code: str = "",
        retryable: bool | None = None,
        cause: BaseException | None = None,
    ) -> None:
        """Initialise the error; ``retryable`` defaults from ``error_type``."""
        self.type = error_type
        self.message = message
        self.details = details
        self.code = code
        self.retryable = (
            error_type in DEFAULT_RETRYABLE if retryable is None else retryable
        )
        self.cause = cause
        self.result: ExportResult | None = None
        super().__init__(self._render())
        if cause is not None:
            self.__cause__ = cause

    def _render(self) -> str:
        if self.details:
            return f"{self.type} error: {self.message} - {self.details}"
        return f"{self.type} error: {self.message}"

    def to_metadata(self) -> dict[str, Any]:
        """Return the structured fields exposed through result metadata."""
        return {
            "error_type": self.type,
            "error_code": self.code,
            "retryable": self.retryable,
        }


class BrowserError(RuntimeError):
    """Raised by the headless browser process runner."""


class BrowserNotFoundError(BrowserError, FileNotFoundError):
    """Raised when no usable headless browser executable exists."""


class CleanupError(RuntimeError):
    """Aggregate of failures collected during a best-effort cleanup sweep."""

    def __init__(self, message: str, errors: Sequence[BaseException]) -> None:
        """Initialise with the individual ``errors`` that were collected."""
        self.errors = list(errors)
        joined = "; ".join(str(err) for err in self.errors)
        super().__init__(f"{message}: {joined}" if joined else message)


# (needles, type, message, code, retryable) checked in priority order
_PATTERNS: tuple[tuple[tuple[str, ...], ErrorType, str, str, bool], ...] = (
    (("timeout", "deadline"), "timeout", "operation timed out", "TIMEOUT", True),
    (
        ("chrome", "browser", "headless"),
        "browser",
        "browser automation failed",
        "BROWSER_ERROR",
        True,
    ),
    (("memory", "out of memory"), "memory", "insufficient memory", "OUT_OF_MEMORY", True),
    (("permission", "access"), "filesystem", "file access denied", "ACCESS_DENIED", False),
    (("network", "connection"), "network", "network error", "NETWORK_ERROR", True),
)


def categorize_error(err: BaseException) -> ExportError:
    """Return ``err`` mapped onto the :class:`ExportError` taxonomy.

    Errors that already are :class:`ExportError` instances are returned
    unchanged, so categorisation is idempotent.
    """
    if isinstance(err, ExportError):
        return err
    text = str(err)
    lowered = text.lower()
    for needles, kind, message, code, retryable in _PATTERNS:
        if any(needle in lowered for needle in needles):
            return ExportError(
                kind,
                message,
                details=text,
                code=code,
                retryable=retryable,
                cause=err,
            )
    return ExportError(
        "renderer",
        "renderer error",
        details=text,
        code="RENDERER_ERROR",
        retryable=False,
        cause=err,
    )


__all__ = [
    "DEFAULT_RETRYABLE",
    "BrowserError",
    "BrowserNotFoundError",
    "CleanupError",
    "ExportError",
    "categorize_error",
]
