"""Source tree conventions: absolute imports and explicit exports."""

from __future__ import annotations

import ast
from pathlib import Path

import pytest

SRC_DIR = Path(__file__).resolve().parents[1] / "src" / "deck_export"
_MODULES = sorted(SRC_DIR.rglob("*.py"))


def _tree(path: Path) -> ast.Module:
    return ast.parse(path.read_text(encoding="utf8"))


def test_sources_found():
    assert _MODULES


@pytest.mark.parametrize("path", _MODULES, ids=lambda path: path.stem)
def test_absolute_imports_only(path: Path) -> None:
    for node in ast.walk(_tree(path)):
        if isinstance(node, ast.ImportFrom) and node.level != 0:
            msg = f"Relative import found in {path} on line {node.lineno}"
            raise AssertionError(msg)


@pytest.mark.parametrize("path", _MODULES, ids=lambda path: path.stem)
def test_modules_declare_exports(path: Path) -> None:
    names = {
        target.id
        for node in _tree(path).body
        if isinstance(node, ast.Assign)
        for target in node.targets
        if isinstance(target, ast.Name)
    }
    assert "__all__" in names, f"{path} lacks __all__"
