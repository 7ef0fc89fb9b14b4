"""PDF export via headless Chrome with a PyMuPDF fallback."""

from __future__ import annotations

import contextlib
from pathlib import Path
from threading import Event

import fitz  # type: ignore  # deck-export: PyMuPDF lacks type hints | issue:-

from deck_export.browser.automation import BrowserAutomation, PdfOptions
from deck_export.errors import BrowserError
from deck_export.models import ExportOptions, ExportResult, Presentation
from deck_export.renderers.base import BrowserBackedRenderer
from deck_export.renderers.fallback import parse_slides, write_fallback_pdf
from deck_export.renderers.html import HtmlRenderer
from deck_export.utils import (
    TEMP_FILE_PREFIX,
    file_size,
    logger,
    make_temp_file,
    raise_if_cancelled,
)


def compress_pdf(path: Path) -> int:
    """Rewrite ``path`` with garbage collection and deflated streams.

    The rewritten file replaces the original only when it is smaller.
    Returns the number of bytes saved.
    """
    before = file_size(path)
    rewritten = make_temp_file(path.parent, f"{TEMP_FILE_PREFIX}compress-", ".pdf")
    try:
        with fitz.open(path) as doc:
            doc.save(
                str(rewritten),
                garbage=4,
                deflate=True,
                deflate_images=True,
                deflate_fonts=True,
                clean=True,
            )
        saved = before - file_size(rewritten)
        if saved <= 0:
            return 0
        rewritten.replace(path)
        return saved
    finally:
        with contextlib.suppress(FileNotFoundError):
            rewritten.unlink()


def pdf_options_for(options: ExportOptions) -> PdfOptions:
    """Translate export options into chrome print settings."""
    return PdfOptions(
        page_size=options.page_size,
        landscape=options.orientation == "landscape",
    )


class PdfRenderer(BrowserBackedRenderer):
    """Print the HTML export to PDF, falling back to a local layout."""

    name = "pdf"
    mime_type = "application/pdf"
    fallback_name = "local-pdf"

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
        """Write ``presentation`` as PDF to ``options.output_path``.

        The intermediate HTML lives beside the output file and is removed
        afterwards. Chrome failures switch to the local layout unless
        ``cancel`` is set, in which case the failure propagates.
        """
        raise_if_cancelled(cancel)
        target = Path(options.output_path)
        print_options = pdf_options_for(options)
        result = ExportResult(success=True, format=self.name, output_path=str(target))

        page_count = len(presentation.slides)
        html_path = make_temp_file(target.parent, f"{TEMP_FILE_PREFIX}pdf-", ".html")
        result.temp_files.append(str(html_path))
        try:
            self._html.write_document(
                presentation, options, html_path, page_css=print_options.page_css()
            )
            reason = self._print(html_path, target, print_options, cancel)
            if reason is not None:
                self._record_fallback(result, reason)
                raise_if_cancelled(cancel)
                page_count = self.fallback(presentation, html_path, target, options)
        finally:
            with contextlib.suppress(FileNotFoundError):
                html_path.unlink()

        if options.compression:
            self._compress(target, result)
        result.file_size = file_size(target)
        result.page_count = page_count
        logger.info("pdf export written to %s (%d bytes)", target, result.file_size)
        return result

    @staticmethod
    def _compress(target: Path, result: ExportResult) -> None:
        try:
            saved = compress_pdf(target)
        except (RuntimeError, ValueError) as exc:
            logger.warning("could not compress %s: %s", target, exc)
            result.warnings.append(f"compression skipped: {exc}")
            return
        logger.debug("compressed %s by %d bytes", target, saved)

    def _print(
        self,
        html_path: Path,
        target: Path,
        print_options: PdfOptions,
        cancel: Event | None,
    ) -> str | None:
        """Print with chrome; return why the fallback is needed or ``None``."""
        reason = self._unavailable_reason(cancel)
        if reason is not None or self._browser is None:
            return reason
        try:
            self._browser.convert_html_to_pdf(html_path, target, print_options, cancel=cancel)
        except BrowserError as exc:
            if cancel is not None and cancel.is_set():
                raise
            return str(exc)
        return None

    def fallback(
        self,
        presentation: Presentation,
        html_path: Path,
        target: Path,
        options: ExportOptions,
    ) -> int:
        """Lay out ``html_path`` locally into ``target``; return the page count."""
        slides = parse_slides(html_path.read_text(encoding="utf-8"))
        return write_fallback_pdf(
            slides,
            target,
            page_size=options.page_size or "A4",
            orientation=options.orientation or "portrait",
            title=presentation.title,
            author=presentation.author,
        )


__all__ = ["PdfRenderer", "compress_pdf", "pdf_options_for"]
