"""Headless browser discovery and process control."""

from deck_export.browser.automation import (
    BrowserAutomation,
    BrowserConfig,
    BrowserValidation,
    ImageOptions,
    PdfOptions,
    image_dimensions,
    validate_browser_setup,
)
from deck_export.browser.locator import find_browser, is_executable_file
from deck_export.browser.process import ProcessState, TrackedProcess

__all__ = [
    "BrowserAutomation",
    "BrowserConfig",
    "BrowserValidation",
    "ImageOptions",
    "PdfOptions",
    "ProcessState",
    "TrackedProcess",
    "find_browser",
    "image_dimensions",
    "is_executable_file",
    "validate_browser_setup",
]
