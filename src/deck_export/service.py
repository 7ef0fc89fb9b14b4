"""Export orchestration: validation, renderer selection, retries and cleanup."""

from __future__ import annotations

import logging
import tempfile
import threading
import time
from collections.abc import Mapping
from pathlib import Path
from threading import Event
from typing import Any

from deck_export.browser.automation import BrowserAutomation, BrowserConfig
from deck_export.config import coerce_str, load_config, section
from deck_export.errors import BrowserError, CleanupError, ExportError
from deck_export.errors import categorize_error as _categorize
from deck_export.models import (
    EXPORT_FORMATS,
    ORIENTATIONS,
    PAGE_SIZES,
    QUALITIES,
    ExportMetrics,
    ExportOptions,
    ExportResult,
    Presentation,
    RetryConfig,
)
from deck_export.paths import PathValidationError, validate_path
from deck_export.renderers.base import BaseRenderer
from deck_export.renderers.html import HtmlRenderer
from deck_export.renderers.images import ImageRenderer
from deck_export.renderers.markdown import MarkdownRenderer
from deck_export.renderers.pdf import PdfRenderer
from deck_export.renderers.registry import RendererRegistry
from deck_export.utils import TEMP_FILE_PREFIX, logger, make_temp_file

DEFAULT_BROWSER_ID = "default"
TEMP_FILE_MAX_AGE_S = 24 * 60 * 60


def detect_browser(config: BrowserConfig | None = None) -> BrowserAutomation | None:
    """Return a process runner for the local browser or ``None`` when missing."""
    try:
        return BrowserAutomation(config)
    except BrowserError as exc:
        logger.info("headless chrome unavailable, using local fallbacks: %s", exc)
        return None


def _validation_error(message: str, code: str, details: str = "") -> ExportError:
    return ExportError("validation", message, details=details, code=code, retryable=False)


def _check_choice(value: str, allowed: tuple[str, ...], what: str, code: str) -> None:
    if value and value not in allowed:
        raise _validation_error(
            f"invalid {what}",
            code,
            f"{value} (must be one of {', '.join(allowed)})",
        )


def _wait(cancel: Event | None, delay_s: float) -> bool:
    """Sleep ``delay_s`` seconds; return ``True`` if ``cancel`` fired meanwhile."""
    if cancel is None:
        time.sleep(delay_s)
        return False
    return cancel.wait(delay_s)


class ExportService:
    """Turn presentations into files, one renderer per export format.

    The service is safe to share between threads. Renderer lookup goes
    through an instance-owned :class:`RendererRegistry`; in-flight metrics
    and registered browser runners are guarded by a lock owned by the
    service, separate from any runner's own process lock.
    """

    def __init__(
        self,
        tmp_dir: str | Path | None = None,
        *,
        browser: BrowserAutomation | None = None,
        detect: bool = True,
        retry_config: RetryConfig | None = None,
        load_plugins: bool = True,
    ) -> None:
        """Create the temp directory and register the built-in renderers.

        Args:
            tmp_dir: Directory for service temp files; system temp when empty.
            browser: Process runner shared by the PDF and images renderers.
            detect: Look for a local browser when ``browser`` is ``None``.
            retry_config: Backoff policy; defaults to :class:`RetryConfig`.
            load_plugins: Register renderers from installed entry points.

        Raises:
            ExportError: If ``tmp_dir`` cannot be created.
        """
        root = Path(tmp_dir) if tmp_dir else Path(tempfile.gettempdir())
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ExportError(
                "filesystem",
                "failed to create temporary directory",
                details=str(root),
                code="MKDIR_FAILED",
                retryable=False,
                cause=exc,
            ) from exc
        self._tmp_dir = root
        self._retry_config = retry_config or RetryConfig()
        self._lock = threading.RLock()
        self._metrics: dict[str, ExportMetrics] = {}
        self._browsers: dict[str, BrowserAutomation] = {}

        if browser is None and detect:
            browser = detect_browser()
        html = HtmlRenderer()
        self._registry = RendererRegistry()
        self._registry.register(html)
        self._registry.register(PdfRenderer(browser, html))
        self._registry.register(ImageRenderer(browser, html))
        self._registry.register(MarkdownRenderer())
        if browser is not None:
            self.register_browser_automation(DEFAULT_BROWSER_ID, browser)
        if load_plugins:
            self._registry.load_entry_points()

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any] | None = None, **kwargs: Any) -> ExportService:
        """Build a service from ``cfg`` or the persisted configuration file."""
        if cfg is None:
            cfg = load_config()
        level = coerce_str(cfg.get("log_level")).upper() or "INFO"
        logger.setLevel(getattr(logging, level, logging.INFO))
        if "browser" not in kwargs:
            browser_cfg = BrowserConfig.from_mapping(section(cfg, "browser"))
            kwargs["browser"] = detect_browser(browser_cfg)
        kwargs.setdefault("detect", False)
        kwargs.setdefault("retry_config", RetryConfig.from_mapping(section(cfg, "retry")))
        return cls(coerce_str(cfg.get("temp_dir")) or None, **kwargs)

    @property
    def temp_dir(self) -> Path:
        return self._tmp_dir

    @property
    def retry_config(self) -> RetryConfig:
        return self._retry_config

    @retry_config.setter
    def retry_config(self, config: RetryConfig) -> None:
        self._retry_config = config

    # ------------------------------------------------------------------
    # export
    # ------------------------------------------------------------------
    def export(
        self,
        presentation: Presentation,
        options: ExportOptions,
        *,
        cancel: Event | None = None,
    ) -> ExportResult:
        """Export ``presentation`` according to ``options``.

        Validation, configuration and output directory failures are
        terminal. Renderer failures are classified and retried with
        exponential backoff while their type is in the configured retryable
        set. Setting ``cancel`` aborts the running attempt and any pending
        backoff sleep.

        Returns:
            The successful result, with the metrics snapshot stored under
            ``metadata["export_metrics"]``.

        Raises:
            ExportError: On terminal failure. ``error.result`` holds the
                failure :class:`ExportResult` with the error taxonomy fields
                in its metadata.
        """
        fmt = options.format if options is not None else ""
        operation_id = f"{fmt}-{time.time_ns()}"
        metrics = ExportMetrics()
        with self._lock:
            self._metrics[operation_id] = metrics

        try:
            self.validate_options(options)
            renderer = self._renderer_for(options.format)
            self._ensure_output_directory(options.output_path)
            result = self._execute_with_retry(renderer, presentation, options, metrics, cancel)
        except ExportError as err:
            metrics.finish()
            with self._lock:
                self._metrics.pop(operation_id, None)
            err.result = self._failure_result(err, options, metrics)
            logger.error(
                "%s export failed after %s: %s", fmt or "unknown", metrics.duration_text(), err
            )
            raise

        metrics.finish()
        metrics.fallbacks_used.extend(result.fallbacks)
        metrics.temp_files_created.extend(result.temp_files)
        metrics.warnings.extend(result.warnings)
        result.warnings = list(metrics.warnings)
        result.duration = metrics.duration_text()
        result.generated_at = metrics.end_time
        result.metadata["export_metrics"] = metrics.snapshot()
        with self._lock:
            self._metrics.pop(operation_id, None)
        logger.info(
            "%s export finished in %s (%d retries, %d fallbacks)",
            fmt,
            result.duration,
            metrics.retry_count,
            len(metrics.fallbacks_used),
        )
        return result

    def validate_options(self, options: ExportOptions | None) -> None:
        """Raise a validation :class:`ExportError` naming the first bad field.

        Formats contributed by registered plugin renderers are accepted in
        addition to the built-in format names.
        """
        if options is None:
            raise _validation_error("export options are required", "NULL_OPTIONS")
        fmt = options.format.strip()
        if not fmt:
            raise _validation_error("export format is required", "MISSING_FORMAT")
        if not options.output_path.strip():
            raise _validation_error("output path is required", "MISSING_OUTPUT_PATH")
        if fmt not in EXPORT_FORMATS and self._registry.get(fmt) is None:
            raise _validation_error(
                "invalid export format",
                "INVALID_FORMAT",
                f"{fmt} (must be one of {', '.join(EXPORT_FORMATS)})",
            )
        try:
            validate_path(options.output_path)
        except PathValidationError as exc:
            code = "PATH_TRAVERSAL" if ".." in options.output_path else "INVALID_OUTPUT_PATH"
            raise ExportError(
                "validation",
                "invalid output path",
                details=f"{options.output_path}: {exc}",
                code=code,
                retryable=False,
                cause=exc,
            ) from exc
        _check_choice(options.quality, QUALITIES, "quality setting", "INVALID_QUALITY")
        _check_choice(options.page_size, PAGE_SIZES, "page size", "INVALID_PAGE_SIZE")
        _check_choice(options.orientation, ORIENTATIONS, "orientation", "INVALID_ORIENTATION")
        for label, value in (("width", options.width), ("height", options.height)):
            if value is not None and value < 0:
                raise _validation_error(
                    f"invalid {label}", "INVALID_DIMENSIONS", f"{value} (must not be negative)"
                )

    def categorize_error(self, err: BaseException) -> ExportError:
        """Return ``err`` mapped onto the export error taxonomy."""
        return _categorize(err)

    def _renderer_for(self, export_format: str) -> BaseRenderer:
        renderer = self._registry.get(export_format)
        if renderer is None:
            raise ExportError(
                "configuration",
                "unsupported export format",
                details=export_format,
                code="UNSUPPORTED_FORMAT",
                retryable=False,
            )
        return renderer

    @staticmethod
    def _ensure_output_directory(output_path: str) -> None:
        directory = Path(output_path).parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ExportError(
                "filesystem",
                "failed to create output directory",
                details=str(directory),
                code="MKDIR_FAILED",
                retryable=False,
                cause=exc,
            ) from exc

    def _is_retryable(self, err: ExportError) -> bool:
        return err.retryable and err.type in self._retry_config.retryable_errors

    def _execute_with_retry(
        self,
        renderer: BaseRenderer,
        presentation: Presentation,
        options: ExportOptions,
        metrics: ExportMetrics,
        cancel: Event | None,
    ) -> ExportResult:
        """Run ``renderer`` until it succeeds or a terminal error occurs."""
        retry = self._retry_config
        attempt = 0
        while True:
            if attempt > 0:
                if _wait(cancel, retry.backoff_delay(attempt)):
                    raise ExportError(
                        "timeout",
                        "export cancelled during retry",
                        code="CANCELLED",
                        retryable=False,
                    )
                metrics.retry_count = attempt
            try:
                return renderer.render(presentation, options, cancel=cancel)
            except Exception as exc:  # noqa: BLE001  # deck-export: renderer failures of any kind are classified before surfacing | issue:-
                if cancel is not None and cancel.is_set():
                    raise ExportError(
                        "timeout",
                        "export cancelled",
                        details=str(exc),
                        code="CANCELLED",
                        retryable=False,
                        cause=exc,
                    ) from exc
                err = _categorize(exc)
                if attempt >= retry.max_retries or not self._is_retryable(err):
                    if err is exc:
                        raise
                    raise err from exc
            attempt += 1
            warning = f"Attempt {attempt} failed: {err.message} (retrying)"
            metrics.warnings.append(warning)
            logger.warning("%s export: %s", options.format, warning)

    def _failure_result(
        self, err: ExportError, options: ExportOptions | None, metrics: ExportMetrics
    ) -> ExportResult:
        metadata: dict[str, Any] = err.to_metadata()
        metadata["retry_count"] = metrics.retry_count
        metadata["export_metrics"] = metrics.snapshot()
        return ExportResult(
            success=False,
            format=options.format if options is not None else "",
            output_path=options.output_path if options is not None else "",
            duration=metrics.duration_text(),
            error=str(err),
            warnings=list(metrics.warnings),
            generated_at=metrics.end_time,
            metadata=metadata,
        )

    # ------------------------------------------------------------------
    # renderers
    # ------------------------------------------------------------------
    def register_renderer(self, renderer: BaseRenderer, export_format: str | None = None) -> None:
        """Serve ``export_format`` (default ``renderer.name``) with ``renderer``."""
        self._registry.register(renderer, export_format)

    def get_supported_formats(self) -> list[str]:
        return list(self._registry.formats())

    # ------------------------------------------------------------------
    # browsers
    # ------------------------------------------------------------------
    def register_browser_automation(self, browser_id: str, browser: BrowserAutomation) -> None:
        """Track ``browser`` under ``browser_id`` for statistics and cleanup."""
        with self._lock:
            self._browsers[browser_id] = browser

    def unregister_browser_automation(self, browser_id: str) -> bool:
        """Stop tracking ``browser_id`` after cleaning it up.

        Cleanup failures are logged. Returns ``False`` for unknown ids.
        """
        with self._lock:
            browser = self._browsers.pop(browser_id, None)
        if browser is None:
            return False
        try:
            browser.cleanup()
        except CleanupError as exc:
            logger.warning("cleanup of browser %s failed: %s", browser_id, exc)
        return True

    def get_browser_resource_usage(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            browsers = dict(self._browsers)
        return {browser_id: browser.get_resource_usage() for browser_id, browser in browsers.items()}

    def cleanup_all_browsers(self) -> None:
        """Clean up and forget every registered browser runner.

        Raises:
            CleanupError: Listing the runners whose cleanup reported errors,
                after all of them have been processed.
        """
        with self._lock:
            browsers = dict(self._browsers)
            self._browsers.clear()
        errors: list[BaseException] = []
        for browser_id, browser in browsers.items():
            try:
                browser.cleanup()
            except CleanupError as exc:
                logger.warning("cleanup of browser %s failed: %s", browser_id, exc)
                errors.append(exc)
        if errors:
            raise CleanupError("browser cleanup errors", errors)

    def kill_all_browser_processes(self) -> None:
        """Force-kill the tracked processes of every registered runner.

        Raises:
            CleanupError: If any runner failed to kill some of its processes.
        """
        with self._lock:
            browsers = dict(self._browsers)
        errors: list[BaseException] = []
        for browser_id, browser in browsers.items():
            try:
                browser.kill_active_processes()
            except CleanupError as exc:
                logger.warning("killing processes of browser %s failed: %s", browser_id, exc)
                errors.append(exc)
        if errors:
            raise CleanupError("kill process errors", errors)

    # ------------------------------------------------------------------
    # statistics
    # ------------------------------------------------------------------
    def get_active_exports(self) -> dict[str, ExportMetrics]:
        """Return metrics of exports that have not finished, keyed by operation id."""
        with self._lock:
            return {op: metrics for op, metrics in self._metrics.items() if metrics.active}

    def get_export_statistics(self) -> dict[str, Any]:
        with self._lock:
            browsers = list(self._browsers.values())
        return {
            "active_exports": len(self.get_active_exports()),
            "retry_config": self._retry_config,
            "supported_formats": self.get_supported_formats(),
            "temp_directory": str(self._tmp_dir),
            "active_browsers": len(browsers),
            "total_browser_processes": sum(b.get_active_process_count() for b in browsers),
        }

    # ------------------------------------------------------------------
    # temp files and shutdown
    # ------------------------------------------------------------------
    def create_temp_file(self, prefix: str, suffix: str = "") -> Path:
        """Create an empty ``deck-export-<prefix>-*<suffix>`` file in the temp dir."""
        return make_temp_file(self._tmp_dir, f"{TEMP_FILE_PREFIX}{prefix}-", suffix)

    def cleanup_temp_files(self, max_age_s: float = TEMP_FILE_MAX_AGE_S) -> int:
        """Delete service temp files older than ``max_age_s``; return the count.

        Raises:
            CleanupError: Listing files that could not be removed.
        """
        cutoff = time.time() - max_age_s
        removed = 0
        errors: list[BaseException] = []
        for path in self._tmp_dir.rglob(f"*{TEMP_FILE_PREFIX}*"):
            try:
                if not path.is_file() or path.stat().st_mtime > cutoff:
                    continue
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as exc:
                errors.append(exc)
        if removed:
            logger.debug("removed %d stale temp files from %s", removed, self._tmp_dir)
        if errors:
            raise CleanupError("temp file cleanup errors", errors)
        return removed

    def cleanup(self) -> None:
        """Release every browser, sweep stale temp files and clear metrics.

        Raises:
            CleanupError: Aggregating browser and temp-file failures, raised
                only after every step has run.
        """
        errors: list[BaseException] = []
        try:
            self.cleanup_all_browsers()
        except CleanupError as exc:
            errors.append(exc)
        try:
            self.cleanup_temp_files()
        except CleanupError as exc:
            errors.append(exc)
        with self._lock:
            self._metrics.clear()
        if errors:
            raise CleanupError("cleanup errors", errors)


__all__ = ["DEFAULT_BROWSER_ID", "TEMP_FILE_MAX_AGE_S", "ExportService", "detect_browser"]
