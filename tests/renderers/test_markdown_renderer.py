from __future__ import annotations

import datetime as dt

from deck_export.models import ExportOptions, Presentation, Slide
from deck_export.renderers.markdown import MarkdownRenderer, html_to_markdown


def test_html_to_markdown_constructs():
    html = (
        "<h1>Title</h1><p>Some <strong>bold</strong> and <em>soft</em> text with "
        "<code>x = 1</code>.</p><ul><li>one</li><li>two</li></ul>"
        '<p><a href="https://example.com">link</a> '
        '<img src="chart.png" alt="Chart"></p><blockquote>quoted</blockquote><hr>'
    )
    md = html_to_markdown(html)
    assert md.startswith("# Title")
    assert "Some **bold** and *soft* text with `x = 1`." in md
    assert "- one\n- two" in md
    assert "[link](https://example.com)" in md
    assert "![Chart](chart.png)" in md
    assert "> quoted" in md
    assert "---" in md
    assert "<" not in md


def test_html_to_markdown_code_blocks_and_entities():
    md = html_to_markdown("<pre><code>if a &lt; b:\n    pass</code></pre><p>Tom &amp; Jerry</p>")
    assert "```\nif a < b:\n    pass\n```" in md
    assert "Tom & Jerry" in md
    assert "\n\n\n" not in md


def test_html_to_markdown_img_attribute_order():
    assert html_to_markdown('<img alt="A" src="a.png">') == "![A](a.png)"
    assert html_to_markdown('<img src="b.png">') == "![](b.png)"


def test_render_document_structure(presentation, tmp_path):
    out = tmp_path / "deck.md"
    options = ExportOptions(
        format="markdown",
        output_path=str(out),
        include_notes=True,
        include_metadata=True,
        metadata={"company": 'ACME "Labs"'},
    )
    result = MarkdownRenderer().render(presentation, options)

    assert result.success
    assert result.page_count == 2
    assert result.file_size == out.stat().st_size
    text = out.read_text(encoding="utf-8")
    assert text.startswith('---\ntitle: "Quarterly Review"\nauthor: "Tester"\n')
    assert 'date: "2024-03-15"' in text
    assert 'generator: "deck_export"' in text
    assert 'company: "ACME \\"Labs\\""' in text
    assert "# Quarterly Review" in text
    assert "- **Author:** Tester" in text
    assert "- **Date:** March 15, 2024" in text
    assert "- **Slides:** 2" in text
    assert text.index("## Slide 1") < text.index("## Slide 2")
    assert "### Speaker Notes\n\n> Thank everyone for coming" in text
    assert "*Exported with deck_export on " in text


def test_notes_and_metadata_omitted_by_default(presentation):
    options = ExportOptions(format="markdown", output_path="x", metadata={"company": "ACME"})
    text = MarkdownRenderer().document(presentation, options)
    assert "Speaker Notes" not in text
    assert "company" not in text


def test_minimal_presentation_has_no_details_block():
    deck = Presentation(title="Bare", slides=[Slide(html="<p>only</p>")])
    text = MarkdownRenderer().document(deck, ExportOptions(format="markdown", output_path="x"))
    assert "Presentation Details" not in text
    assert "author:" not in text
    assert "## Slide 1\n\nonly" in text


def test_multiline_notes_are_quoted_line_by_line():
    deck = Presentation(
        title="Notes",
        date=dt.date(2024, 1, 1),
        slides=[Slide(html="<p>x</p>", notes="first\nsecond")],
    )
    options = ExportOptions(format="markdown", output_path="x", include_notes=True)
    text = MarkdownRenderer().document(deck, options)
    assert "> first\n> second" in text
