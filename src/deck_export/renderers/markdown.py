"""Markdown export reconstructed from rendered slide HTML."""

from __future__ import annotations

import datetime as dt
import html
import re
from pathlib import Path
from threading import Event

from deck_export.models import ExportOptions, ExportResult, Presentation
from deck_export.renderers.base import BaseRenderer
from deck_export.utils import file_size, raise_if_cancelled

_FLAGS = re.IGNORECASE | re.DOTALL

# applied in order; fenced code runs before inline code
_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"<pre[^>]*>\s*<code[^>]*>(.*?)</code>\s*</pre>", _FLAGS), "```\n\\1\n```\n\n"),
    (re.compile(r"<pre[^>]*>(.*?)</pre>", _FLAGS), "```\n\\1\n```\n\n"),
    *(
        (re.compile(rf"<h{level}[^>]*>(.*?)</h{level}>", _FLAGS), "#" * level + " \\1\n\n")
        for level in range(1, 7)
    ),
    (re.compile(r"<(?:strong|b)>(.*?)</(?:strong|b)>", _FLAGS), "**\\1**"),
    (re.compile(r"<(?:em|i)>(.*?)</(?:em|i)>", _FLAGS), "*\\1*"),
    (re.compile(r"<code[^>]*>(.*?)</code>", _FLAGS), "`\\1`"),
    (
        re.compile(r"<img\b[^>]*?src=\"([^\"]*)\"[^>]*?alt=\"([^\"]*)\"[^>]*>", _FLAGS),
        "![\\2](\\1)",
    ),
    (
        re.compile(r"<img\b[^>]*?alt=\"([^\"]*)\"[^>]*?src=\"([^\"]*)\"[^>]*>", _FLAGS),
        "![\\1](\\2)",
    ),
    (re.compile(r"<img\b[^>]*?src=\"([^\"]*)\"[^>]*>", _FLAGS), "![](\\1)"),
    (re.compile(r"<a\b[^>]*?href=\"([^\"]*)\"[^>]*>(.*?)</a>", _FLAGS), "[\\2](\\1)"),
    (re.compile(r"<blockquote[^>]*>\s*(.*?)\s*</blockquote>", _FLAGS), "> \\1\n\n"),
    (re.compile(r"<li[^>]*>(.*?)</li>", _FLAGS), "- \\1\n"),
    (re.compile(r"</?(?:ul|ol)[^>]*>", _FLAGS), "\n"),
    (re.compile(r"<hr\s*/?>", _FLAGS), "\n---\n\n"),
    (re.compile(r"<br\s*/?>", _FLAGS), "\n"),
    (re.compile(r"<p[^>]*>(.*?)</p>", _FLAGS), "\\1\n\n"),
    (re.compile(r"</?[a-z][^>]*>", _FLAGS), ""),
)
_BLANK_RUNS = re.compile(r"\n{3,}")


def html_to_markdown(source: str) -> str:
    """Return a Markdown approximation of rendered slide HTML.

    Only the constructs produced by the upstream slide renderer are mapped
    (headings, emphasis, code, links, images, lists, blockquotes and rules);
    any other tag is dropped and its text kept.
    """
    content = source
    for pattern, replacement in _RULES:
        content = pattern.sub(replacement, content)
    content = html.unescape(content)
    return _BLANK_RUNS.sub("\n\n", content).strip()


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class MarkdownRenderer(BaseRenderer):
    """Write the deck as Markdown with YAML frontmatter."""

    name = "markdown"
    mime_type = "text/markdown"

    def document(self, presentation: Presentation, options: ExportOptions) -> str:
        """Return the Markdown document for ``presentation``."""
        now = dt.datetime.now()
        lines = ["---", f"title: {_quote(presentation.title)}"]
        if presentation.author:
            lines.append(f"author: {_quote(presentation.author)}")
        if presentation.date:
            lines.append(f"date: {_quote(presentation.date.isoformat())}")
        if presentation.theme:
            lines.append(f"theme: {_quote(presentation.theme)}")
        lines.append(f"exported: {_quote(now.strftime('%Y-%m-%d %H:%M:%S'))}")
        lines.append('generator: "deck_export"')
        if options.include_metadata:
            lines.extend(f"{key}: {_quote(str(value))}" for key, value in options.metadata.items())
        lines += ["---", "", f"# {presentation.title}", ""]

        if presentation.author or presentation.date:
            lines.append("**Presentation Details:**")
            if presentation.author:
                lines.append(f"- **Author:** {presentation.author}")
            if presentation.date:
                lines.append(
                    f"- **Date:** {presentation.date.strftime('%B')} "
                    f"{presentation.date.day}, {presentation.date.year}"
                )
            lines += [f"- **Slides:** {len(presentation.slides)}", "", "---", ""]

        last = len(presentation.slides) - 1
        for index, slide in enumerate(presentation.slides):
            lines += [f"## Slide {index + 1}", "", html_to_markdown(slide.html), ""]
            if options.include_notes and slide.notes:
                quoted = "\n".join(f"> {line}" for line in slide.notes.splitlines())
                lines += ["### Speaker Notes", "", quoted, ""]
            if index < last:
                lines += ["---", ""]

        lines += ["", "---", "", f"*Exported with deck_export on {now:%B %d, %Y at %H:%M}*", ""]
        return "\n".join(lines)

    def render(
        self,
        presentation: Presentation,
        options: ExportOptions,
        *,
        cancel: Event | None = None,
    ) -> ExportResult:
        raise_if_cancelled(cancel)
        target = Path(options.output_path)
        target.write_text(self.document(presentation, options), encoding="utf-8")
        return ExportResult(
            success=True,
            format=self.name,
            output_path=str(target),
            file_size=file_size(target),
            page_count=len(presentation.slides),
        )


__all__ = ["MarkdownRenderer", "html_to_markdown"]
