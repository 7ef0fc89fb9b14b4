"""Per-slide raster export via headless Chrome with a Pillow fallback."""

from __future__ import annotations

import contextlib
import dataclasses
from pathlib import Path
from threading import Event

from deck_export.browser.automation import BrowserAutomation, ImageOptions
from deck_export.errors import BrowserError
from deck_export.models import ExportOptions, ExportResult, Presentation
from deck_export.renderers.base import BrowserBackedRenderer
from deck_export.renderers.fallback import parse_single_slide, write_fallback_image
from deck_export.renderers.html import HtmlRenderer
from deck_export.utils import (
    TEMP_FILE_PREFIX,
    file_size,
    logger,
    make_temp_file,
    raise_if_cancelled,
)


def image_extension(quality: str) -> str:
    """Return the file extension used for a quality tier."""
    return "jpg" if quality == "low" else "png"


def image_options_for(options: ExportOptions) -> ImageOptions:
    """Translate export options into chrome screenshot settings."""
    return ImageOptions(
        width=options.width or 0,
        height=options.height or 0,
        quality=options.quality,
        format=image_extension(options.quality),
    )


class ImageRenderer(BrowserBackedRenderer):
    """Write one image per slide into the ``output_path`` directory."""

    name = "images"
    mime_type = "image/png"
    fallback_name = "local-image"

    def __init__(
        self,
        browser: BrowserAutomation | None = None,
        html_renderer: HtmlRenderer | None = None,
    ) -> None:
        """Initialise with an optional runner and the HTML template renderer."""
        super().__init__(browser)
        self._html = html_renderer or HtmlRenderer()

    def render(
        self,
        presentation: Presentation,
        options: ExportOptions,
        *,
        cancel: Event | None = None,
    ) -> ExportResult:
        """Render every slide to ``slide-NNN.<ext>`` inside ``options.output_path``.

        Files are listed in presentation order. Speaker notes are never drawn.
        """
        raise_if_cancelled(cancel)
        out_dir = Path(options.output_path)
        out_dir.mkdir(parents=True, exist_ok=True)
        shot = image_options_for(options)
        slide_options = dataclasses.replace(options, include_notes=False)
        result = ExportResult(success=True, format=self.name, output_path=str(out_dir))

        reason = self._unavailable_reason(cancel)
        if reason is not None:
            self._record_fallback(result, reason)

        for index, slide in enumerate(presentation.slides, start=1):
            raise_if_cancelled(cancel)
            image_path = out_dir / f"slide-{index:03d}.{shot.format}"
            html_path = make_temp_file(out_dir, f"{TEMP_FILE_PREFIX}slide-{index}-", ".html")
            result.temp_files.append(str(html_path))
            try:
                self._html.write_document(presentation.single(slide), slide_options, html_path)
                failure = reason
                if failure is None:
                    failure = self._screenshot(html_path, image_path, shot, cancel)
                    if failure is not None:
                        self._record_fallback(result, f"slide {index}: {failure}")
                if failure is not None:
                    image_path = self.fallback(html_path, image_path, shot)
            finally:
                with contextlib.suppress(FileNotFoundError):
                    html_path.unlink()
            result.files.append(str(image_path))
            result.file_size += file_size(image_path)

        result.page_count = len(presentation.slides)
        logger.info("images export wrote %d files to %s", len(result.files), out_dir)
        return result

    def _screenshot(
        self,
        html_path: Path,
        image_path: Path,
        shot: ImageOptions,
        cancel: Event | None,
    ) -> str | None:
        """Capture with chrome; return why the fallback is needed or ``None``."""
        if self._browser is None:
            return "browser automation not configured"
        try:
            self._browser.convert_html_to_image(html_path, image_path, shot, cancel=cancel)
        except BrowserError as exc:
            if cancel is not None and cancel.is_set():
                raise
            return str(exc)
        return None

    def fallback(self, html_path: Path, image_path: Path, shot: ImageOptions) -> Path:
        """Draw ``html_path`` locally into ``image_path``; return the written path."""
        width, height = shot.dimensions()
        return write_fallback_image(
            parse_single_slide(html_path.read_text(encoding="utf-8")),
            image_path,
            width=width,
            height=height,
            quality=shot.quality,
        )


__all__ = ["ImageRenderer", "image_extension", "image_options_for"]
