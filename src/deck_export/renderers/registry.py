"""Instance-owned registry mapping export formats to renderers."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator, Mapping
from importlib import metadata
from typing import cast

from deck_export.renderers.base import BaseRenderer
from deck_export.utils import logger

ENTRY_POINT_GROUP = "deck_export.renderers"

type EntryPointIterable = Iterable[metadata.EntryPoint]


class RendererRegistry:
    """Thread-safe mapping of export format to renderer instance.

    Each :class:`~deck_export.service.ExportService` owns its own registry so
    that services in one process never share renderer state.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._renderers: dict[str, BaseRenderer] = {}
        self._entry_points_loaded = False
        self._lock = threading.RLock()

    def register(self, renderer: BaseRenderer, export_format: str | None = None) -> BaseRenderer:
        """Register ``renderer`` for ``export_format`` (default: its ``name``).

        A later registration for the same format replaces the earlier one.
        """
        name = export_format if export_format is not None else renderer.name
        if not isinstance(name, str) or not name.strip():
            msg = f"Renderer {type(renderer).__name__} must define a non-empty 'name' attribute."
            raise ValueError(msg)
        key = name.strip().lower()
        with self._lock:
            previous = self._renderers.get(key)
            self._renderers[key] = renderer
        if previous is not None and previous is not renderer:
            logger.debug("renderer for '%s' replaced by %s", key, type(renderer).__name__)
        return renderer

    def get(self, export_format: str) -> BaseRenderer | None:
        """Return the renderer registered for ``export_format``."""
        with self._lock:
            return self._renderers.get(export_format.strip().lower())

    def formats(self) -> tuple[str, ...]:
        """Return registered formats in registration order."""
        with self._lock:
            return tuple(self._renderers)

    def load_entry_points(self) -> int:
        """Register plugin renderers once; return how many were added.

        Plugins never replace a renderer that is already registered.
        """
        with self._lock:
            if self._entry_points_loaded:
                return 0
            self._entry_points_loaded = True
            added = 0
            for entry in _iter_entry_points():
                renderer = _load_renderer_from_entry(entry)
                if renderer is None:
                    continue
                key = renderer.name.strip().lower()
                if not key or key in self._renderers:
                    logger.debug(
                        "renderer plugin '%s' skipped for format '%s'", entry.name, key
                    )
                    continue
                self.register(renderer)
                added += 1
            return added


def _iter_entry_points() -> Iterator[metadata.EntryPoint]:
    """Yield configured entry points while handling discovery errors."""
    try:
        collection = metadata.entry_points()
    except Exception as exc:  # noqa: BLE001  # deck-export: metadata backends can raise arbitrary errors; degrade to no plugins | issue:-
        logger.debug("renderer entry point discovery failed: %s", exc)
        return iter(())

    if hasattr(collection, "select"):
        selected = cast(EntryPointIterable, collection.select(group=ENTRY_POINT_GROUP))
        return iter(selected)

    legacy_points = cast(Mapping[str, EntryPointIterable], collection)
    return iter(legacy_points.get(ENTRY_POINT_GROUP, ()))


def _load_renderer_from_entry(entry: metadata.EntryPoint) -> BaseRenderer | None:
    """Return a renderer instance exposed by ``entry`` when available."""
    name = getattr(entry, "name", "<unknown>")
    try:
        payload = entry.load()
    except Exception as exc:  # noqa: BLE001  # deck-export: plugin entry point import may fail arbitrarily; degrade to warning | issue:-
        logger.warning("renderer entry point '%s' failed to load: %s", name, exc)
        return None

    if isinstance(payload, BaseRenderer):
        return payload
    if isinstance(payload, type) and issubclass(payload, BaseRenderer):
        try:
            return payload()
        except Exception as exc:  # noqa: BLE001  # deck-export: renderer constructors may fail arbitrarily; treat as unavailable | issue:-
            logger.info("renderer %s failed to initialise: %s", payload.__name__, exc)
            return None

    logger.warning("renderer entry point '%s' did not expose a renderer class", name)
    return None


__all__ = ["ENTRY_POINT_GROUP", "RendererRegistry"]
