from __future__ import annotations

from pathlib import Path

from PIL import Image

from deck_export.browser.automation import BrowserAutomation, BrowserConfig
from deck_export.models import ExportOptions, Presentation, Slide
from deck_export.renderers.images import ImageRenderer, image_extension, image_options_for
from deck_export.utils import TEMP_FILE_PREFIX


def _browser(fake, tmp_path):
    return BrowserAutomation(
        BrowserConfig(executable_path=str(fake.path), temp_dir=str(tmp_path), timeout_s=10)
    )


def _options(path, **extra):
    return ExportOptions(format="images", output_path=str(path), **extra)


def test_extension_and_options_follow_quality():
    assert image_extension("low") == "jpg"
    assert image_extension("medium") == "png"
    assert image_extension("") == "png"
    shot = image_options_for(_options("out", quality="high", width=800, height=600))
    assert (shot.format, shot.dimensions()) == ("png", (800, 600))


def test_local_fallback_writes_one_file_per_slide(presentation, tmp_path):
    out_dir = tmp_path / "slides"
    result = ImageRenderer().render(presentation, _options(out_dir, quality="low"))

    assert result.success
    assert result.page_count == 2
    assert [Path(f).name for f in result.files] == ["slide-001.jpg", "slide-002.jpg"]
    assert result.file_size == sum(Path(f).stat().st_size for f in result.files)
    assert len(result.fallbacks) == 1
    with Image.open(result.files[0]) as img:
        assert img.format == "JPEG"
        assert img.size == (1280, 720)
    assert list(out_dir.glob(f"{TEMP_FILE_PREFIX}*")) == []
    assert len(result.temp_files) == 2


def test_explicit_dimensions(presentation, tmp_path):
    result = ImageRenderer().render(
        presentation, _options(tmp_path / "s", width=400, height=300)
    )
    with Image.open(result.files[1]) as img:
        assert img.format == "PNG"
        assert img.size == (400, 300)


def test_browser_screenshots(presentation, tmp_path, fake_browser):
    fake = fake_browser("ok")
    out_dir = tmp_path / "shots"
    result = ImageRenderer(_browser(fake, tmp_path)).render(
        presentation, _options(out_dir, quality="medium")
    )

    assert result.fallbacks == []
    assert [Path(f).name for f in result.files] == ["slide-001.png", "slide-002.png"]
    assert all(Path(f).read_text() == "fake browser output" for f in result.files)
    assert "--window-size=1920,1080" in fake.args()
    assert list(out_dir.glob(f"{TEMP_FILE_PREFIX}*")) == []


def test_failed_screenshot_falls_back_per_slide(presentation, tmp_path, fake_browser):
    browser = _browser(fake_browser("no-output"), tmp_path)
    result = ImageRenderer(browser).render(presentation, _options(tmp_path / "s"))

    assert [f.reason.split(":")[0] for f in result.fallbacks] == ["slide 1", "slide 2"]
    assert len(result.files) == 2
    for path in result.files:
        with Image.open(path) as img:
            assert img.format == "PNG"
    assert browser.get_active_process_count() == 0


def test_single_slide_html_excludes_notes(tmp_path, monkeypatch):
    deck = Presentation(
        title="Notes",
        slides=[Slide(html="<h1>Visible</h1>", notes="secret notes")],
    )
    seen: list[str] = []
    renderer = ImageRenderer()
    original = renderer.fallback

    def capture(html_path, image_path, shot):
        seen.append(html_path.read_text(encoding="utf-8"))
        return original(html_path, image_path, shot)

    monkeypatch.setattr(renderer, "fallback", capture)
    renderer.render(deck, _options(tmp_path / "s", include_notes=True))
    assert "Visible" in seen[0]
    assert "secret notes" not in seen[0]


def test_malformed_html_still_renders(tmp_path):
    deck = Presentation(title="Broken", slides=[Slide(html="<div><h1>Incomplete HTML")])
    result = ImageRenderer().render(deck, _options(tmp_path / "s"))
    assert result.success
    assert len(result.files) == 1
    assert Path(result.files[0]).stat().st_size > 0


def test_zero_slides_write_nothing(empty_presentation, tmp_path):
    result = ImageRenderer().render(empty_presentation, _options(tmp_path / "s"))
    assert result.success
    assert result.files == []
    assert result.page_count == 0
