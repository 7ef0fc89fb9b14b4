"""Abstract base classes for export renderers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from threading import Event
from typing import Any, ClassVar

from deck_export.browser.automation import BrowserAutomation
from deck_export.errors import BrowserError
from deck_export.models import ExportOptions, ExportResult, FallbackInfo, Presentation
from deck_export.utils import logger


class BaseRenderer(ABC):
    """Define the public renderer interface.

    Each concrete renderer serves exactly one export format, declared through
    :attr:`name`, and writes its artifact to ``options.output_path``.
    """

    #: Export format served by this renderer, used for registry lookups.
    name: ClassVar[str] = ""
    #: MIME type of the produced artifact.
    mime_type: ClassVar[str] = ""

    @abstractmethod
    def render(
        self,
        presentation: Presentation,
        options: ExportOptions,
        *,
        cancel: Event | None = None,
    ) -> ExportResult:
        """Render ``presentation`` to ``options.output_path``.

        Args:
            presentation: Deck whose slides carry pre-rendered HTML.
            options: Validated export options.
            cancel: Optional event that aborts long running work when set.

        Returns:
            A successful :class:`ExportResult` describing the written files.

        Raises:
            Exception: Any failure. The export service maps it onto the
                :class:`~deck_export.errors.ExportError` taxonomy.
        """

    def supports(self, export_format: str) -> bool:
        """Return ``True`` when this renderer serves ``export_format``."""
        return export_format.strip().lower() == self.name

    def get_mime_type(self) -> str:
        return self.mime_type


class BrowserBackedRenderer(BaseRenderer):
    """Renderer that prefers headless Chrome and falls back to local drawing."""

    #: Identifier recorded in :class:`FallbackInfo` when the fallback runs.
    fallback_name: ClassVar[str] = ""

    def __init__(self, browser: BrowserAutomation | None = None) -> None:
        """Initialise with an optional process runner; ``None`` means local only."""
        self._browser = browser

    @property
    def browser(self) -> BrowserAutomation | None:
        return self._browser

    def is_browser_available(self, cancel: Event | None = None) -> bool:
        """Return ``True`` when a runner is configured and its probe passes."""
        return self._browser is not None and self._browser.is_available(cancel)

    def browser_info(self) -> dict[str, Any]:
        """Return a description of the configured browser for diagnostics."""
        reason = self._unavailable_reason()
        if self._browser is None or reason is not None:
            return {"available": False, "reason": reason}
        info: dict[str, Any] = {
            "available": True,
            "executable_path": self._browser.executable_path,
            "active_processes": self._browser.get_active_process_count(),
        }
        try:
            info["version"] = self._browser.get_chrome_version()
        except BrowserError as exc:
            logger.debug("chrome version lookup failed: %s", exc)
        return info

    def _unavailable_reason(self, cancel: Event | None = None) -> str | None:
        """Return why chrome cannot be used right now, or ``None`` when it can."""
        if self._browser is None:
            return "browser automation not configured"
        try:
            self._browser.ensure_available(cancel)
        except BrowserError as exc:
            return str(exc)
        return None

    def _record_fallback(self, result: ExportResult, reason: str) -> None:
        """Note on ``result`` that the local generator replaced the browser."""
        logger.warning("%s export falling back to %s: %s", self.name, self.fallback_name, reason)
        result.fallbacks.append(FallbackInfo(reason=reason, fallback_used=self.fallback_name))
        result.warnings.append(f"used {self.fallback_name} fallback: {reason}")


__all__ = ["BaseRenderer", "BrowserBackedRenderer"]
