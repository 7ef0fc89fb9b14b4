"""Path validation utilities."""

from __future__ import annotations

from pathlib import Path

ERR_EMPTY = "empty path"
ERR_NULL_BYTES = "path contains null bytes"
ERR_TRAVERSAL = "path contains directory traversal"


class PathValidationError(ValueError):
    """Raised when a user-supplied path is invalid or unsafe."""


def has_traversal(path: str | Path) -> bool:
    """Return ``True`` when ``path`` contains a ``..`` sequence."""
    return ".." in str(path)


def validate_path(path: str | Path) -> Path:
    """Return ``path`` as a :class:`Path` after rejecting unsafe input.

    The check runs on the raw string before any normalisation so that
    ``a/b/../c`` is refused even though it would resolve inside ``a``.
    Absolute paths and relative paths are both accepted; callers decide
    where relative paths are anchored.

    Raises:
        PathValidationError: If the path is empty, contains null bytes or
            contains a directory traversal sequence.
    """
    path_str = str(path)
    if not path_str:
        raise PathValidationError(ERR_EMPTY)
    if "\x00" in path_str:
        raise PathValidationError(ERR_NULL_BYTES)
    if has_traversal(path_str):
        raise PathValidationError(ERR_TRAVERSAL)
    return Path(path_str)


__all__ = ["PathValidationError", "has_traversal", "validate_path"]
