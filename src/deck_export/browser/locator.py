"""Locate a headless Chrome or Chromium executable on the host."""

from __future__ import annotations

import os
import shutil
import sys
from collections.abc import Callable, Sequence
from pathlib import Path

from deck_export.errors import BrowserNotFoundError

PATH_NAMES: tuple[str, ...] = ("google-chrome", "chromium", "chromium-browser", "chrome")

_CANDIDATES: dict[str, tuple[str, ...]] = {
    "darwin": (
        "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
        "/Applications/Chromium.app/Contents/MacOS/Chromium",
        "/usr/bin/google-chrome",
        "/usr/bin/chromium",
        "/usr/bin/chromium-browser",
    ),
    "linux": (
        "/usr/bin/google-chrome",
        "/usr/bin/google-chrome-stable",
        "/usr/bin/chromium",
        "/usr/bin/chromium-browser",
        "/snap/bin/chromium",
        "/usr/bin/chrome",
    ),
    "win32": (
        r"C:\Program Files\Google\Chrome\Application\chrome.exe",
        r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe",
        "chrome.exe",
        "chromium.exe",
    ),
}

ERR_NOT_FOUND = (
    "no Chrome or Chromium executable found; install Chrome/Chromium "
    "or set browser.executable_path"
)


def _platform_key(platform: str) -> str:
    if platform.startswith("win"):
        return "win32"
    if platform.startswith("linux"):
        return "linux"
    return platform


def browser_candidates(platform: str | None = None) -> tuple[str, ...]:
    """Return the well-known install locations for ``platform``."""
    key = _platform_key(platform or sys.platform)
    return _CANDIDATES.get(key, PATH_NAMES)


def is_executable_file(path: str | Path, *, platform: str | None = None) -> bool:
    """Return ``True`` when ``path`` is a regular file the user may run.

    Windows has no execute bit, so existence is all that is checked there.
    """
    candidate = Path(path)
    if not candidate.is_file():
        return False
    if _platform_key(platform or sys.platform) == "win32":
        return True
    return os.access(candidate, os.X_OK)


def find_browser(
    executable_path: str | Path | None = None,
    *,
    platform: str | None = None,
    candidates: Sequence[str] | None = None,
    which: Callable[[str], str | None] = shutil.which,
) -> str:
    """Return the path of the first usable browser executable.

    Args:
        executable_path: Explicitly configured path tried before anything
            else. A configured path that is not executable is skipped rather
            than treated as fatal so auto-detection can still succeed.
        platform: Override for :data:`sys.platform`, mainly for tests.
        candidates: Override for the platform candidate list.
        which: ``PATH`` resolver, :func:`shutil.which` by default.

    Raises:
        BrowserNotFoundError: If no candidate exists and is executable.
    """
    if executable_path and is_executable_file(executable_path, platform=platform):
        return str(executable_path)

    search = candidates if candidates is not None else browser_candidates(platform)
    for candidate in search:
        if is_executable_file(candidate, platform=platform):
            return candidate
        resolved = which(candidate)
        if resolved:
            return resolved

    for name in PATH_NAMES:
        resolved = which(name)
        if resolved:
            return resolved

    raise BrowserNotFoundError(ERR_NOT_FOUND)


__all__ = [
    "PATH_NAMES",
    "browser_candidates",
    "find_browser",
    "is_executable_file",
]
