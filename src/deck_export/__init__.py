"""Presentation export pipeline: HTML, PDF, per-slide images and Markdown."""

from deck_export.errors import (
    BrowserError,
    BrowserNotFoundError,
    CleanupError,
    ExportError,
    categorize_error,
)
from deck_export.models import (
    ExportMetrics,
    ExportOptions,
    ExportResult,
    FallbackInfo,
    Presentation,
    RetryConfig,
    Slide,
)
from deck_export.service import ExportService
from deck_export.utils import configure_logging, logger

__all__ = [
    "BrowserError",
    "BrowserNotFoundError",
    "CleanupError",
    "ExportError",
    "ExportMetrics",
    "ExportOptions",
    "ExportResult",
    "ExportService",
    "FallbackInfo",
    "Presentation",
    "RetryConfig",
    "Slide",
    "categorize_error",
    "configure_logging",
    "logger",
]
