"""
Tests for book export.
"""

import os
from datetime import date

import pytest
from bs4 import BeautifulSoup
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import ListFlowable, Paragraph

from book_lab.core.config import ExportConfig
from book_lab.core.exceptions import ExportError, NotFoundError
from book_lab.services.export import (
    PdfExporter,
    _inline_markup,
    export_filename,
    format_date,
    render_book_html,
)


@pytest.fixture
def exporter(store, tmp_path):
    return PdfExporter(store, ExportConfig(output_dir=str(tmp_path)))


@pytest.fixture
def filled_book(store, book):
    store.create_chapter(book.id, "Beginnings", content="<h2>Start</h2><p>It was a <b>dark</b> night.</p>")
    store.create_chapter(book.id, "Endings")
    return book


def test_format_date():
    assert format_date(date(2024, 3, 5)) == "March 5, 2024"


def test_export_filename():
    assert export_filename("My Book: Vol. 1", "pdf", timestamp_ms=1700000000000) == "My_Book__Vol__1_1700000000000.pdf"


def test_render_book_html(store, filled_book):
    book = store.get_book(filled_book.id)
    chapters = store.list_chapters(book.id)

    html = render_book_html(book, chapters, generated_on=date(2024, 1, 2))

    assert "<h1>Test Book</h1>" in html
    assert "A. Writer" in html
    assert "January 2, 2024" in html
    assert html.index("Chapter 1: Beginnings") < html.index("Chapter 2: Endings")
    assert "<p>It was a <b>dark</b> night.</p>" in html
    assert "<p>No content available.</p>" in html


def test_render_escapes_titles(store):
    book = store.create_book("<script>alert(1)</script>")
    store.create_chapter(book.id, "A & B")
    html = render_book_html(store.get_book(book.id), store.list_chapters(book.id))

    assert "<script>alert(1)</script>" not in html
    assert "A &amp; B" in html


def test_html_to_flowables(exporter):
    styles = exporter._create_styles()
    flowables = exporter.html_to_flowables(
        "<h2>Section</h2><p>Some <em>styled</em> text &amp; more</p>"
        "<ul><li>one</li><li>two</li></ul><!-- note -->loose text",
        styles,
    )

    assert [type(f) for f in flowables] == [Paragraph, Paragraph, ListFlowable, Paragraph]
    assert flowables[0].style.name == "ContentH2"
    assert flowables[1].getPlainText() == "Some styled text & more"
    assert flowables[3].getPlainText() == "loose text"


def test_blockquote_keeps_paragraphs(exporter):
    styles = exporter._create_styles()
    flowables = exporter.html_to_flowables(
        "<blockquote><p>First line.</p><p>Second line.</p></blockquote>", styles
    )

    assert [f.getPlainText() for f in flowables] == ["First line.", "Second line."]
    assert all(f.style.name == "ContentQuote" for f in flowables)


def test_list_items_with_paragraphs(exporter):
    styles = exporter._create_styles()
    flowables = exporter.html_to_flowables("<ol><li><p>Alpha</p><p>Beta</p></li><li>Gamma</li></ol>", styles)

    assert len(flowables) == 1
    assert isinstance(flowables[0], ListFlowable)


def test_inline_markup():
    soup = BeautifulSoup("<p>A <strong>bold</strong>, <em>new</em> line<br>x &lt; y</p>", "html.parser")
    assert _inline_markup(soup.p) == "A <b>bold</b>, <i>new</i> line<br/>x &lt; y"


def test_html_to_flowables_empty(exporter):
    assert exporter.html_to_flowables("", getSampleStyleSheet()) == []


def test_build_pdf(store, exporter, filled_book):
    pdf = exporter.build_pdf(store.get_book(filled_book.id), store.list_chapters(filled_book.id))
    assert pdf.startswith(b"%PDF")


def test_export_book_pdf(exporter, filled_book, tmp_path):
    result = exporter.export_book(filled_book.id)

    assert os.path.dirname(result.path) == str(tmp_path)
    assert result.filename.startswith("Test_Book_")
    assert result.filename.endswith(".pdf")
    with open(result.path, "rb") as f:
        assert f.read(4) == b"%PDF"


def test_export_book_html(exporter, filled_book, tmp_path):
    out_dir = tmp_path / "html"
    result = exporter.export_book(filled_book.id, output_dir=str(out_dir), fmt="html")

    assert result.filename.endswith(".html")
    with open(result.path, encoding="utf-8") as f:
        assert "Chapter 2: Endings" in f.read()


def test_render_failure_writes_nothing(exporter, filled_book, tmp_path, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("layout error")

    monkeypatch.setattr(exporter, "build_pdf", broken)
    with pytest.raises(ExportError, match="layout error"):
        exporter.export_book(filled_book.id)

    assert list(tmp_path.glob("*.pdf")) == []


def test_export_without_chapters(exporter, book):
    with pytest.raises(ExportError, match="No chapters"):
        exporter.export_book(book.id)


def test_export_missing_book(exporter):
    with pytest.raises(NotFoundError):
        exporter.export_book(999)


def test_export_unknown_format(exporter, filled_book):
    with pytest.raises(ValueError):
        exporter.export_book(filled_book.id, fmt="docx")
