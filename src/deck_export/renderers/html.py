"""Standalone HTML export rendered from a Jinja2 template."""

from __future__ import annotations

import datetime as dt
from pathlib import Path
from threading import Event

from jinja2 import Environment, FileSystemLoader, select_autoescape

from deck_export.models import ExportOptions, ExportResult, Presentation
from deck_export.renderers.base import BaseRenderer
from deck_export.utils import file_size, raise_if_cancelled

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"
TEMPLATE_NAME = "presentation.html.j2"


class HtmlRenderer(BaseRenderer):
    """Write a self-contained, keyboard navigable HTML deck."""

    name = "html"
    mime_type = "text/html"

    def __init__(self, template_dir: Path = TEMPLATE_DIR) -> None:
        """Load the presentation template from ``template_dir``."""
        self.env = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(default_for_string=True, default=True),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.template = self.env.get_template(TEMPLATE_NAME)

    def document(
        self,
        presentation: Presentation,
        options: ExportOptions,
        *,
        page_css: str = "",
    ) -> str:
        """Return the HTML document for ``presentation``.

        ``page_css`` is embedded verbatim into the document stylesheet; the
        PDF renderer uses it to carry ``@page`` rules.
        """
        metadata = dict(options.metadata) if options.include_metadata else {}
        return self.template.render(
            title=presentation.title,
            author=presentation.author,
            date=presentation.date.isoformat() if presentation.date else "",
            theme=options.theme or presentation.theme,
            slides=presentation.slides,
            include_notes=options.include_notes,
            generated_at=dt.datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            metadata=metadata,
            page_css=page_css,
        )

    def write_document(
        self,
        presentation: Presentation,
        options: ExportOptions,
        path: str | Path,
        *,
        page_css: str = "",
    ) -> Path:
        """Write :meth:`document` output to ``path`` and return it."""
        target = Path(path)
        target.write_text(
            self.document(presentation, options, page_css=page_css), encoding="utf-8"
        )
        return target

    def render(
        self,
        presentation: Presentation,
        options: ExportOptions,
        *,
        cancel: Event | None = None,
    ) -> ExportResult:
        raise_if_cancelled(cancel)
        target = self.write_document(presentation, options, options.output_path)
        return ExportResult(
            success=True,
            format=self.name,
            output_path=str(target),
            file_size=file_size(target),
            page_count=len(presentation.slides),
        )


__all__ = ["TEMPLATE_DIR", "HtmlRenderer"]
