"""
Book export to PDF and standalone HTML.

The PDF is laid out with ReportLab: a cover page, a table of contents and one
section per chapter, Letter size with page numbers in the footer. Chapter
content is the stored editor HTML, converted to ReportLab flowables with
BeautifulSoup.
"""

import os
import re
import time
from datetime import date
from html import escape
from io import BytesIO
from typing import List, Optional, Sequence

from bs4 import BeautifulSoup, Comment, NavigableString, Tag
from loguru import logger
from pydantic import BaseModel
from reportlab.lib.colors import Color
from reportlab.lib.pagesizes import A4, LETTER
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    BaseDocTemplate, Frame, ListFlowable, ListItem, PageBreak, PageTemplate,
    Paragraph, Spacer,
)

from book_lab.core.config import ExportConfig
from book_lab.core.exceptions import ExportError
from book_lab.db.models import BookRead, ChapterRead


EMPTY_CHAPTER_HTML = "<p>No content available.</p>"

# Inline HTML tags and the ReportLab paragraph markup they map to
INLINE_TAGS = {
    "b": "b", "strong": "b",
    "i": "i", "em": "i",
    "u": "u",
    "s": "strike", "strike": "strike", "del": "strike",
    "sub": "sub", "sup": "super",
    "code": "font face=\"Courier\"",
}

HEADING_STYLES = {"h1": "ContentH1", "h2": "ContentH2", "h3": "ContentH3",
                  "h4": "ContentH3", "h5": "ContentH3", "h6": "ContentH3"}


class ExportResult(BaseModel):
    path: str
    filename: str


def format_date(day: date) -> str:
    """Long US date, e.g. ``March 5, 2024``."""
    return f"{day.strftime('%B')} {day.day}, {day.year}"


def export_filename(title: str, extension: str = "pdf", timestamp_ms: Optional[int] = None) -> str:
    """Title with every non-alphanumeric character replaced by ``_``, plus a millisecond timestamp."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    safe_title = re.sub(r"[^a-zA-Z0-9]", "_", title)
    return f"{safe_title}_{timestamp_ms}.{extension}"


def render_book_html(
    book: BookRead,
    chapters: Sequence[ChapterRead],
    generated_on: Optional[date] = None,
) -> str:
    """Standalone HTML document for a book: cover, contents, then each chapter."""
    generated_on = generated_on or date.today()
    chapters = sorted(chapters, key=lambda c: c.chapter_number)

    parts = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        '<meta charset="UTF-8">',
        f"<title>{escape(book.title)}</title>",
        "<style>",
        "@page { size: Letter; margin: 1in; }",
        "body { font-family: Georgia, 'Times New Roman', serif; font-size: 12pt; line-height: 1.6; }",
        ".cover { text-align: center; page-break-after: always; padding-top: 3in; }",
        ".toc { page-break-after: always; }",
        ".chapter { page-break-before: always; }",
        ".chapter-title { font-size: 14pt; font-style: italic; color: #444; }",
        "</style>",
        "</head>",
        "<body>",
        '<div class="cover">',
        f"<h1>{escape(book.title)}</h1>",
    ]
    if book.author:
        parts.append(f'<p class="author">{escape(book.author)}</p>')
    parts.append(f'<p class="date">{format_date(generated_on)}</p>')
    parts.append("</div>")

    parts.append('<div class="toc">')
    parts.append("<h2>Table of Contents</h2>")
    parts.append("<ul>")
    for chapter in chapters:
        parts.append(f"<li>Chapter {chapter.chapter_number}: {escape(chapter.title)}</li>")
    parts.append("</ul>")
    parts.append("</div>")

    for chapter in chapters:
        parts.append('<div class="chapter">')
        parts.append(f"<h1>Chapter {chapter.chapter_number}</h1>")
        parts.append(f'<h2 class="chapter-title">{escape(chapter.title)}</h2>')
        parts.append(chapter.content or EMPTY_CHAPTER_HTML)
        parts.append("</div>")

    parts.append("</body>")
    parts.append("</html>")
    return "\n".join(parts)


def _inline_markup(node) -> str:
    """ReportLab paragraph markup for the inline content of ``node``."""
    if isinstance(node, Comment):
        return ""
    if isinstance(node, NavigableString):
        return escape(str(node), quote=False)
    if not isinstance(node, Tag):
        return ""
    if node.name == "br":
        return "<br/>"

    inner = "".join(_inline_markup(child) for child in node.children)
    markup = INLINE_TAGS.get(node.name)
    if not markup or not inner:
        return inner
    closing = markup.split()[0]
    return f"<{markup}>{inner}</{closing}>"


class PdfExporter:
    """Renders books from the store to PDF (or HTML) files."""

    def __init__(self, store, config: Optional[ExportConfig] = None):
        self.store = store
        self.config = config or ExportConfig()

    def _create_styles(self):
        styles = getSampleStyleSheet()

        styles.add(ParagraphStyle(
            name="BookTitle",
            parent=styles["Title"],
            fontSize=28,
            leading=34,
            alignment=1,
            spaceAfter=18,
        ))
        styles.add(ParagraphStyle(
            name="CoverLine",
            parent=styles["Normal"],
            fontSize=14,
            leading=18,
            alignment=1,
            textColor=Color(0.3, 0.3, 0.3),
            spaceAfter=8,
        ))
        styles.add(ParagraphStyle(
            name="TOCTitle",
            parent=styles["Heading1"],
            fontSize=18,
            spaceAfter=12,
        ))
        styles.add(ParagraphStyle(
            name="TOCEntry",
            parent=styles["Normal"],
            fontSize=11,
            leftIndent=0.25 * inch,
            spaceBefore=4,
            spaceAfter=4,
        ))
        styles.add(ParagraphStyle(
            name="ChapterNumber",
            parent=styles["Heading1"],
            fontSize=20,
            alignment=1,
            spaceBefore=12,
            spaceAfter=6,
        ))
        styles.add(ParagraphStyle(
            name="ChapterTitle",
            parent=styles["Heading2"],
            fontName="Helvetica-Oblique",
            fontSize=15,
            alignment=1,
            textColor=Color(0.27, 0.27, 0.27),
            spaceAfter=18,
        ))
        styles.add(ParagraphStyle(name="ContentH1", parent=styles["Heading1"], fontSize=16))
        styles.add(ParagraphStyle(name="ContentH2", parent=styles["Heading2"], fontSize=14))
        styles.add(ParagraphStyle(name="ContentH3", parent=styles["Heading3"], fontSize=12))
        styles.add(ParagraphStyle(
            name="ContentBody",
            parent=styles["Normal"],
            fontName="Times-Roman",
            fontSize=12,
            leading=19,
            spaceBefore=3,
            spaceAfter=6,
            alignment=4,
        ))
        styles.add(ParagraphStyle(
            name="ContentQuote",
            parent=styles["ContentBody"],
            fontName="Times-Italic",
            leftIndent=0.4 * inch,
            rightIndent=0.4 * inch,
        ))
        return styles

    def _add_page_number(self, canvas, doc):
        canvas.saveState()
        canvas.setFont("Helvetica", 9)
        canvas.setFillColor(Color(0.4, 0.4, 0.4))
        canvas.drawCentredString(doc.pagesize[0] / 2, 0.5 * inch, str(canvas.getPageNumber()))
        canvas.restoreState()

    def html_to_flowables(self, html: str, styles) -> List:
        """Convert editor HTML into ReportLab flowables."""
        soup = BeautifulSoup(html or "", "html.parser")
        flowables: List = []
        self._block_flowables(soup, styles, flowables)
        return flowables

    def _block_flowables(self, parent, styles, flowables: List, body_style: str = "ContentBody") -> None:
        loose = []

        def flush_loose():
            text = "".join(loose).strip()
            loose.clear()
            if text:
                flowables.append(Paragraph(text, styles[body_style]))

        for node in parent.children:
            name = node.name if isinstance(node, Tag) else None

            if name in HEADING_STYLES:
                flush_loose()
                text = _inline_markup(node).strip()
                if text:
                    flowables.append(Paragraph(text, styles[HEADING_STYLES[name]]))
            elif name == "p":
                flush_loose()
                text = _inline_markup(node).strip()
                if text:
                    flowables.append(Paragraph(text, styles[body_style]))
            elif name == "blockquote":
                flush_loose()
                self._block_flowables(node, styles, flowables, body_style="ContentQuote")
            elif name in ("ul", "ol"):
                flush_loose()
                items = []
                for li in node.find_all("li", recursive=False):
                    content: List = []
                    self._block_flowables(li, styles, content, body_style=body_style)
                    if len(content) == 1:
                        items.append(ListItem(content[0]))
                    elif content:
                        items.append(ListItem(content))
                if items:
                    flowables.append(ListFlowable(
                        items,
                        bulletType="1" if name == "ol" else "bullet",
                        leftIndent=0.3 * inch,
                    ))
            elif name in ("div", "section", "article", "body", "html"):
                flush_loose()
                self._block_flowables(node, styles, flowables, body_style=body_style)
            elif name == "hr":
                flush_loose()
                flowables.append(Spacer(1, 0.2 * inch))
            else:
                loose.append(_inline_markup(node))

        flush_loose()

    def build_pdf(
        self,
        book: BookRead,
        chapters: Sequence[ChapterRead],
        generated_on: Optional[date] = None,
    ) -> bytes:
        """Render a book to PDF bytes."""
        generated_on = generated_on or date.today()
        chapters = sorted(chapters, key=lambda c: c.chapter_number)
        page_size = A4 if self.config.paper_size.upper() == "A4" else LETTER

        output = BytesIO()
        doc = BaseDocTemplate(
            output,
            pagesize=page_size,
            leftMargin=inch,
            rightMargin=inch,
            topMargin=inch,
            bottomMargin=inch,
            title=book.title,
            author=book.author or "",
            creator="Book Lab",
        )
        frame = Frame(doc.leftMargin, doc.bottomMargin, doc.width, doc.height, id="normal")
        doc.addPageTemplates([PageTemplate(id="main", frames=frame, onPage=self._add_page_number)])

        styles = self._create_styles()
        story = []

        # Cover
        story.append(Spacer(1, 2.5 * inch))
        story.append(Paragraph(escape(book.title), styles["BookTitle"]))
        if book.author:
            story.append(Paragraph(escape(book.author), styles["CoverLine"]))
        story.append(Paragraph(format_date(generated_on), styles["CoverLine"]))
        story.append(PageBreak())

        # Table of contents
        story.append(Paragraph("Table of Contents", styles["TOCTitle"]))
        for chapter in chapters:
            story.append(Paragraph(
                f"Chapter {chapter.chapter_number}: {escape(chapter.title)}",
                styles["TOCEntry"],
            ))

        for chapter in chapters:
            story.append(PageBreak())
            story.append(Paragraph(f"Chapter {chapter.chapter_number}", styles["ChapterNumber"]))
            story.append(Paragraph(escape(chapter.title), styles["ChapterTitle"]))
            story.extend(self.html_to_flowables(chapter.content or EMPTY_CHAPTER_HTML, styles))

        doc.build(story)
        return output.getvalue()

    def export_book(self, book_id: int, output_dir: Optional[str] = None, fmt: str = "pdf") -> ExportResult:
        """Write a book to ``output_dir`` as PDF or HTML."""
        if fmt not in ("pdf", "html"):
            raise ValueError(f"Unsupported export format: {fmt}")

        book = self.store.get_book(book_id)
        chapters = self.store.list_chapters(book_id)
        if not chapters:
            raise ExportError("No chapters to generate PDF from")

        output_dir = os.path.expanduser(output_dir or self.config.output_dir)
        os.makedirs(output_dir, exist_ok=True)
        filename = export_filename(book.title, fmt)
        path = os.path.join(output_dir, filename)

        logger.info(f"Exporting book {book_id} ({len(chapters)} chapters) to {path}")
        try:
            if fmt == "pdf":
                data = self.build_pdf(book, chapters)
            else:
                data = render_book_html(book, chapters).encode("utf-8")
        except Exception as e:
            raise ExportError(f"Failed to render book {book_id}: {e}") from e

        try:
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise ExportError(f"Failed to write {path}: {e}") from e

        logger.info(f"Book exported: {path}")
        return ExportResult(path=path, filename=filename)
