from __future__ import annotations

from threading import Event

import pytest

from deck_export.models import ExportOptions, ExportResult, Presentation
from deck_export.renderers import registry
from deck_export.renderers.base import BaseRenderer
from deck_export.renderers.registry import RendererRegistry


class _BaseStub(BaseRenderer):
    name = "stub"
    mime_type = "text/plain"

    def render(
        self,
        presentation: Presentation,
        options: ExportOptions,
        *,
        cancel: Event | None = None,
    ) -> ExportResult:
        del presentation, cancel
        return ExportResult(success=True, format=self.name, output_path=options.output_path)


class _FakeEntryPoint:
    def __init__(self, payload: object, name: str) -> None:
        self._payload = payload
        self.name = name

    def load(self) -> object:
        return self._payload


def _install_entry_points(monkeypatch: pytest.MonkeyPatch, entries: list[object]) -> None:
    class FakeEntryPoints:
        def select(self, *, group: str) -> list[object]:
            assert group == registry.ENTRY_POINT_GROUP
            return entries

    monkeypatch.setattr(registry.metadata, "entry_points", lambda: FakeEntryPoints())


def test_register_and_get() -> None:
    reg = RendererRegistry()
    stub = _BaseStub()
    assert reg.register(stub) is stub
    assert reg.get("stub") is stub
    assert reg.get(" STUB ") is stub
    assert reg.get("missing") is None
    assert reg.formats() == ("stub",)


def test_register_under_explicit_format_replaces_previous() -> None:
    reg = RendererRegistry()
    first, second = _BaseStub(), _BaseStub()
    reg.register(first, "pptx")
    reg.register(second, "pptx")
    assert reg.get("pptx") is second
    assert reg.formats() == ("pptx",)


def test_register_requires_name() -> None:
    class NamelessRenderer(_BaseStub):
        name = ""

    with pytest.raises(ValueError, match="non-empty"):
        RendererRegistry().register(NamelessRenderer())


def test_registries_do_not_share_state() -> None:
    first, second = RendererRegistry(), RendererRegistry()
    first.register(_BaseStub())
    assert second.formats() == ()


def test_supports_and_mime_type() -> None:
    stub = _BaseStub()
    assert stub.supports("stub")
    assert stub.supports(" Stub")
    assert not stub.supports("pdf")
    assert stub.get_mime_type() == "text/plain"


def test_entry_points_registration_variants(monkeypatch: pytest.MonkeyPatch) -> None:
    class ClassRenderer(_BaseStub):
        name = "from_class"

    class InstanceRenderer(_BaseStub):
        name = "from_instance"

    class DuplicateRenderer(_BaseStub):
        name = "from_class"

    class BrokenRenderer(_BaseStub):
        name = "broken"

        def __init__(self) -> None:
            raise RuntimeError("cannot start")

    _install_entry_points(
        monkeypatch,
        [
            _FakeEntryPoint(ClassRenderer, "class"),
            _FakeEntryPoint(DuplicateRenderer, "duplicate"),
            _FakeEntryPoint(InstanceRenderer(), "instance"),
            _FakeEntryPoint(BrokenRenderer, "broken"),
            _FakeEntryPoint("not a renderer", "string"),
        ],
    )

    reg = RendererRegistry()
    assert reg.load_entry_points() == 2
    assert reg.formats() == ("from_class", "from_instance")
    assert isinstance(reg.get("from_class"), ClassRenderer)
    # discovery runs once per registry
    assert reg.load_entry_points() == 0


def test_entry_points_never_replace_builtin(monkeypatch: pytest.MonkeyPatch) -> None:
    class PdfPlugin(_BaseStub):
        name = "pdf"

    _install_entry_points(monkeypatch, [_FakeEntryPoint(PdfPlugin, "pdf")])
    reg = RendererRegistry()
    builtin = _BaseStub()
    reg.register(builtin, "pdf")
    assert reg.load_entry_points() == 0
    assert reg.get("pdf") is builtin


def test_entry_point_discovery_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def boom() -> object:
        raise RuntimeError("boom")

    monkeypatch.setattr(registry.metadata, "entry_points", boom)
    assert RendererRegistry().load_entry_points() == 0


def test_entry_points_legacy_mapping(monkeypatch: pytest.MonkeyPatch) -> None:
    class LegacyRenderer(_BaseStub):
        name = "legacy"

    entries = {registry.ENTRY_POINT_GROUP: [_FakeEntryPoint(LegacyRenderer, "legacy")]}
    monkeypatch.setattr(registry.metadata, "entry_points", lambda: entries)

    reg = RendererRegistry()
    assert reg.load_entry_points() == 1
    assert reg.formats() == ("legacy",)


def test_entry_point_load_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    class ExplodingEntry:
        name = "explode"

        def load(self) -> object:
            raise RuntimeError("boom")

    _install_entry_points(monkeypatch, [ExplodingEntry()])
    assert RendererRegistry().load_entry_points() == 0
