from __future__ import annotations

import pytest

from deck_export.errors import (
    BrowserError,
    BrowserNotFoundError,
    CleanupError,
    ExportError,
    categorize_error,
)


@pytest.mark.parametrize(
    ("message", "kind", "code", "retryable"),
    [
        ("operation timeout exceeded", "timeout", "TIMEOUT", True),
        ("context deadline exceeded", "timeout", "TIMEOUT", True),
        ("chrome exited with status 1", "browser", "BROWSER_ERROR", True),
        ("Headless shell crashed", "browser", "BROWSER_ERROR", True),
        ("cannot allocate memory", "memory", "OUT_OF_MEMORY", True),
        ("permission denied: /out.pdf", "filesystem", "ACCESS_DENIED", False),
        ("Access is denied", "filesystem", "ACCESS_DENIED", False),
        ("connection reset by peer", "network", "NETWORK_ERROR", True),
        ("something odd happened", "renderer", "RENDERER_ERROR", False),
    ],
)
def test_categorize_error_buckets(message, kind, code, retryable):
    original = RuntimeError(message)
    err = categorize_error(original)
    assert err.type == kind
    assert err.code == code
    assert err.retryable is retryable
    assert err.details == message
    assert err.cause is original
    assert err.__cause__ is original


def test_categorize_error_priority_order():
    # timeout wins over browser, browser wins over network
    assert categorize_error(RuntimeError("chrome timeout")).type == "timeout"
    assert categorize_error(RuntimeError("browser connection lost")).type == "browser"


def test_categorize_error_is_idempotent():
    err = ExportError("validation", "bad input", code="X")
    assert categorize_error(err) is err
    classified = categorize_error(OSError("network unreachable"))
    assert categorize_error(classified) is classified


def test_export_error_string_format():
    assert str(ExportError("timeout", "operation timed out")) == (
        "timeout error: operation timed out"
    )
    err = ExportError("filesystem", "file access denied", details="permission denied")
    assert str(err) == "filesystem error: file access denied - permission denied"


def test_export_error_retryable_defaults_follow_type():
    assert ExportError("browser", "x").retryable is True
    assert ExportError("network", "x").retryable is True
    assert ExportError("validation", "x").retryable is False
    assert ExportError("configuration", "x").retryable is False
    assert ExportError("timeout", "x", retryable=False).retryable is False


def test_export_error_metadata():
    err = ExportError("memory", "insufficient memory", code="OUT_OF_MEMORY")
    assert err.to_metadata() == {
        "error_type": "memory",
        "error_code": "OUT_OF_MEMORY",
        "retryable": True,
    }
    assert err.result is None


def test_browser_not_found_is_browser_and_file_error():
    err = BrowserNotFoundError("no chrome")
    assert isinstance(err, BrowserError)
    assert isinstance(err, FileNotFoundError)


def test_cleanup_error_aggregates_messages():
    err = CleanupError("cleanup errors", [OSError("first"), OSError("second")])
    assert len(err.errors) == 2
    assert str(err) == "cleanup errors: first; second"
    assert str(CleanupError("cleanup errors", [])) == "cleanup errors"
