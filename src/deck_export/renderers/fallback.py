"""Browser-free PDF and image generation from exported slide HTML.

Used by the PDF and image renderers whenever headless Chrome is missing,
fails its probe or fails a conversion. The HTML is reduced to a list of
:class:`SlideContent` blocks (title plus text lines) which are then laid out
with PyMuPDF or drawn with Pillow. Layout fidelity is not a goal; producing
a valid, non-empty artifact for any input is.
"""

from __future__ import annotations

import io
import textwrap
from dataclasses import dataclass, field
from pathlib import Path

import fitz  # type: ignore  # deck-export: PyMuPDF lacks type hints | issue:-
from bs4 import BeautifulSoup, Tag
from PIL import Image, ImageDraw, ImageFont

DEFAULT_PDF_TITLE = "Generated PDF"
DEFAULT_PDF_TEXT = "This document was generated with no slide content."
DEFAULT_IMAGE_TITLE = "Generated Slide"
DEFAULT_IMAGE_TEXT = "This slide was generated with no slide content."

_TITLE_TAGS = frozenset({"h1", "h2", "h3"})
_TEXT_TAGS = frozenset({"p", "li", "h4", "h5", "h6", "blockquote"})
_CODE_TAGS = frozenset({"pre", "code"})
_SKIPPED_TAGS = frozenset({"script", "style", "head", "title"})

# PDF layout, in points
_MARGIN = 56.7
_TITLE_SIZE = 16
_TEXT_SIZE = 12
_TITLE_WIDTH = 65
_CODE_SIZE = 10
_TEXT_WIDTH = 90
_CODE_WIDTH = 80
_PAGE_SIZES = {"A4": "a4", "Letter": "letter"}

_BACKGROUND = (255, 255, 255)
_TITLE_COLOR = (45, 55, 72)
_TEXT_COLOR = (74, 85, 104)
_CODE_COLOR = (113, 128, 150)
_JPEG_QUALITY = {"low": 70, "high": 95}


@dataclass(slots=True)
class SlideContent:
    """Text recovered from one slide: a title and ordered content lines."""

    title: str = ""
    content: list[str] = field(default_factory=list)
    code: list[bool] = field(default_factory=list)

    @property
    def is_code(self) -> bool:
        """Return ``True`` when any content line came from a code block."""
        return any(self.code)

    @property
    def empty(self) -> bool:
        return not self.title and not self.content

    def add(self, text: str, *, is_code: bool = False) -> None:
        self.content.append(text)
        self.code.append(is_code)

    def lines(self) -> list[tuple[str, bool]]:
        return list(zip(self.content, self.code, strict=True))


def _is_slide_div(tag: Tag) -> bool:
    classes = tag.get("class") or []
    if isinstance(classes, str):
        classes = [classes]
    return tag.name == "div" and "slide" in " ".join(classes)


def _text(tag: Tag) -> str:
    return " ".join(tag.get_text(" ", strip=True).split())


def _code_text(tag: Tag) -> str:
    return tag.get_text().strip("\n").rstrip()


class _SlideCollector:
    """Depth-first walk that groups captured text into slides."""

    def __init__(self) -> None:
        self.slides: list[SlideContent] = []
        self.current = SlideContent()

    def flush(self) -> None:
        if not self.current.empty:
            self.slides.append(self.current)
        self.current = SlideContent()

    def walk(self, node: Tag) -> None:
        for child in node.children:
            if not isinstance(child, Tag):
                continue
            name = child.name
            if name in _SKIPPED_TAGS:
                continue
            if name in _TITLE_TAGS:
                text = _text(child)
                if text and not self.current.title:
                    self.current.title = text
                elif text:
                    self.current.add(text)
            elif name in _TEXT_TAGS:
                text = _text(child)
                if text:
                    self.current.add(text)
            elif name in _CODE_TAGS:
                text = _code_text(child)
                if text:
                    self.current.add(text, is_code=True)
            else:
                if _is_slide_div(child):
                    self.flush()
                self.walk(child)


def parse_slides(
    html: str,
    *,
    default_title: str = DEFAULT_PDF_TITLE,
    default_text: str = DEFAULT_PDF_TEXT,
) -> list[SlideContent]:
    """Split exported HTML into per-slide text blocks.

    A ``div`` whose class contains ``slide`` starts a new slide. The first
    ``h1``-``h3`` of a slide becomes its title; paragraphs, list items and
    further headings become content lines; ``pre``/``code`` blocks become
    code lines. Elements nested inside a captured element are not visited
    again. Malformed markup is tolerated; when nothing is recoverable a
    single default slide is returned so callers never render an empty
    document.
    """
    collector = _SlideCollector()
    collector.walk(BeautifulSoup(html, "html.parser"))
    collector.flush()
    slides = collector.slides
    if not slides:
        default = SlideContent(title=default_title)
        default.add(default_text)
        slides.append(default)
    return slides


def parse_single_slide(html: str) -> SlideContent:
    """Return all text of ``html`` merged into one slide."""
    slides = parse_slides(
        html, default_title=DEFAULT_IMAGE_TITLE, default_text=DEFAULT_IMAGE_TEXT
    )
    merged = SlideContent(title=next((s.title for s in slides if s.title), ""))
    for slide in slides:
        if slide.title and slide.title != merged.title:
            merged.add(slide.title)
        for text, is_code in slide.lines():
            merged.add(text, is_code=is_code)
    return merged


def page_dimensions(page_size: str, orientation: str) -> tuple[float, float]:
    """Return ``(width, height)`` in points; unknown sizes use A4."""
    width, height = fitz.paper_size(_PAGE_SIZES.get(page_size, "a4"))
    if orientation == "landscape":
        return height, width
    return width, height


def _wrap(text: str, width: int, *, keep_lines: bool) -> list[str]:
    if not keep_lines:
        return textwrap.wrap(text, width) or [""]
    lines: list[str] = []
    for raw in text.splitlines():
        lines.extend(textwrap.wrap(raw, width, drop_whitespace=False) or [""])
    return lines


def write_fallback_pdf(
    slides: list[SlideContent],
    output_path: str | Path,
    *,
    page_size: str = "A4",
    orientation: str = "portrait",
    title: str = "",
    author: str = "",
) -> int:
    """Lay ``slides`` out one per page into ``output_path``; return page count.

    Titles use bold Helvetica, text regular Helvetica wrapped at a fixed
    character width and code Courier. A slide that overflows its page
    continues on a new one.
    """
    width, height = page_dimensions(page_size, orientation)
    bottom = height - _MARGIN
    doc = fitz.open()
    try:
        for slide in slides:
            page = doc.new_page(width=width, height=height)
            y = _MARGIN
            if slide.title:
                y += _TITLE_SIZE
                for line in _wrap(slide.title, _TITLE_WIDTH, keep_lines=False):
                    page.insert_text((_MARGIN, y), line, fontname="hebo", fontsize=_TITLE_SIZE)
                    y += _TITLE_SIZE * 1.5
                y += _TITLE_SIZE * 0.5
            for text, is_code in slide.lines():
                size = _CODE_SIZE if is_code else _TEXT_SIZE
                font = "cour" if is_code else "helv"
                limit = _CODE_WIDTH if is_code else _TEXT_WIDTH
                for line in _wrap(text, limit, keep_lines=is_code):
                    if y + size > bottom:
                        page = doc.new_page(width=width, height=height)
                        y = _MARGIN
                    y += size
                    page.insert_text((_MARGIN, y), line, fontname=font, fontsize=size)
                    y += size * 0.5
                y += 4
        doc.set_metadata(
            {
                "title": title,
                "author": author,
                "subject": "Presentation export",
                "creator": "deck_export",
                "producer": "deck_export",
            }
        )
        doc.save(str(output_path), garbage=3, deflate=True)
        return doc.page_count
    finally:
        doc.close()


def jpeg_quality(quality: str) -> int:
    """Return the JPEG quality for a quality tier."""
    return _JPEG_QUALITY.get(quality, 90)


def encode_png(image: Image.Image, *, compress_level: int = 6) -> bytes:
    """Return PNG-encoded bytes for ``image``."""
    with io.BytesIO() as buf:
        image.save(buf, format="PNG", compress_level=compress_level)
        return buf.getvalue()


def encode_jpeg(image: Image.Image, *, quality: int, subsampling: int = 0) -> bytes:
    """Return JPEG-encoded bytes for ``image`` using the requested quality."""
    rgb = image.convert("RGB")
    with io.BytesIO() as buf:
        rgb.save(buf, format="JPEG", quality=quality, subsampling=subsampling)
        return buf.getvalue()


def _font(size: float, *, bold: bool = False, mono: bool = False) -> ImageFont.FreeTypeFont:
    if mono:
        name = "DejaVuSansMono.ttf"
    elif bold:
        name = "DejaVuSans-Bold.ttf"
    else:
        name = "DejaVuSans.ttf"
    points = max(int(size), 1)
    try:
        return ImageFont.truetype(name, points)
    except OSError:
        return ImageFont.load_default(size=points)  # type: ignore[return-value]


def _wrap_to_width(
    text: str, draw: ImageDraw.ImageDraw, font: ImageFont.FreeTypeFont, max_width: float
) -> list[str]:
    """Greedy word wrap measuring rendered width with ``font``."""
    lines: list[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if current and draw.textlength(candidate, font=font) > max_width:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


def render_slide_image(slide: SlideContent, width: int, height: int) -> Image.Image:
    """Draw ``slide`` on a white ``width`` x ``height`` canvas."""
    image = Image.new("RGB", (width, height), _BACKGROUND)
    draw = ImageDraw.Draw(image)
    margin_x = width * 0.1
    margin_y = height * 0.1
    content_width = width - 2 * margin_x
    title_size = width / 25
    text_size = width / 35
    y = margin_y

    if slide.title:
        font = _font(title_size, bold=True)
        for line in _wrap_to_width(slide.title, draw, font, content_width):
            draw.text((width / 2, y), line, fill=_TITLE_COLOR, font=font, anchor="mt")
            y += title_size * 1.2
        y += title_size * 0.5

    for text, is_code in slide.lines():
        size = text_size * 0.9 if is_code else text_size
        font = _font(size, mono=is_code)
        color = _CODE_COLOR if is_code else _TEXT_COLOR
        for line in _wrap_to_width(text, draw, font, content_width):
            if y + size > height - margin_y:
                return image
            draw.text((margin_x, y), line, fill=color, font=font)
            y += size * 1.4
        y += size * 0.3
    return image


def write_fallback_image(
    slide: SlideContent,
    output_path: str | Path,
    *,
    width: int,
    height: int,
    quality: str = "",
) -> Path:
    """Draw ``slide`` and save it as PNG or JPEG based on the file suffix.

    A path without suffix gets ``.png`` appended; the written path is
    returned.

    Raises:
        ValueError: If the suffix is neither PNG nor JPEG.
    """
    target = Path(output_path)
    suffix = target.suffix.lower()
    if not suffix:
        target = target.with_suffix(".png")
        suffix = ".png"
    if suffix not in {".png", ".jpg", ".jpeg"}:
        msg = f"unsupported image format: {suffix}"
        raise ValueError(msg)
    image = render_slide_image(slide, width, height)
    if suffix == ".png":
        target.write_bytes(encode_png(image))
    else:
        target.write_bytes(encode_jpeg(image, quality=jpeg_quality(quality)))
    return target


__all__ = [
    "DEFAULT_IMAGE_TEXT",
    "DEFAULT_IMAGE_TITLE",
    "DEFAULT_PDF_TEXT",
    "DEFAULT_PDF_TITLE",
    "SlideContent",
    "encode_jpeg",
    "encode_png",
    "jpeg_quality",
    "page_dimensions",
    "parse_single_slide",
    "parse_slides",
    "render_slide_image",
    "write_fallback_image",
    "write_fallback_pdf",
]
