"""Common utilities shared by the export pipeline modules."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from threading import Event

from platformdirs import user_config_dir

# store configuration in a platform-specific user config directory
CONFIG_FILE = Path(user_config_dir("deck_export")) / "deck_export_config.json"

# prefix shared by every temporary file the pipeline creates
TEMP_FILE_PREFIX = "deck-export-"

# central logger for the project
logger = logging.getLogger("deck_export")
logger.propagate = False

ERR_CANCELLED = "cancelled"


def configure_logging(
    level: str = "INFO", handler: logging.Handler | None = None
) -> logging.Logger:
    """Configure and return the package logger."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(numeric)
    logger.handlers.clear()
    if handler is None:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(handler)

    # forward warnings.warn() calls through the logging system
    logging.captureWarnings(True)
    wlog = logging.getLogger("py.warnings")
    wlog.setLevel(numeric)
    wlog.handlers.clear()
    wlog.addHandler(handler)
    wlog.propagate = False
    return logger


# configure default logging on import
configure_logging()


def raise_if_cancelled(cancel: Event | None) -> None:
    """Raise ``RuntimeError('cancelled')`` if ``cancel`` is set."""
    if cancel and cancel.is_set():
        raise RuntimeError(ERR_CANCELLED)


def file_size(path: str | Path) -> int:
    """Return the size of ``path`` in bytes or ``0`` when it cannot be read."""
    try:
        return Path(path).stat().st_size
    except OSError:
        return 0


def make_temp_file(directory: str | Path, prefix: str, suffix: str = "") -> Path:
    """Create an empty file in ``directory`` and return its path."""
    fd, name = tempfile.mkstemp(prefix=prefix, suffix=suffix, dir=directory)
    os.close(fd)
    return Path(name)


__all__ = [
    "CONFIG_FILE",
    "TEMP_FILE_PREFIX",
    "configure_logging",
    "file_size",
    "logger",
    "make_temp_file",
    "raise_if_cancelled",
]
