"""Format renderers.

One renderer per export format; PDF and images prefer headless Chrome and
fall back to local generators when it is unavailable.
"""

from deck_export.renderers.base import BaseRenderer, BrowserBackedRenderer
from deck_export.renderers.html import HtmlRenderer
from deck_export.renderers.images import ImageRenderer
from deck_export.renderers.markdown import MarkdownRenderer, html_to_markdown
from deck_export.renderers.pdf import PdfRenderer
from deck_export.renderers.registry import ENTRY_POINT_GROUP, RendererRegistry

__all__ = [
    "ENTRY_POINT_GROUP",
    "BaseRenderer",
    "BrowserBackedRenderer",
    "HtmlRenderer",
    "ImageRenderer",
    "MarkdownRenderer",
    "PdfRenderer",
    "RendererRegistry",
    "html_to_markdown",
]
