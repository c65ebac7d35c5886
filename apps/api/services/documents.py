"""PDF helpers: render generated text to a PDF and pull text out of uploaded resumes."""

from __future__ import annotations

import io
import logging
import re
from xml.sax.saxutils import escape

from pypdf import PdfReader
from pypdf.errors import PdfReadError
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

logger = logging.getLogger(__name__)

MAX_PDF_PAGES = 50
_HEADING_RE = re.compile(r"^[A-Z][A-Z0-9 &/'-]{2,}$")


def render_text_pdf(text: str, title: str = "Document") -> bytes:
    """Lay out plain generated text on A4; ALL CAPS lines become headings."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        title=title,
        leftMargin=48,
        rightMargin=48,
        topMargin=48,
        bottomMargin=48,
    )
    styles = getSampleStyleSheet()
    body = ParagraphStyle("VCBody", parent=styles["BodyText"], fontSize=10.5, leading=14)
    heading = ParagraphStyle("VCHeading", parent=styles["Heading3"], spaceBefore=8, spaceAfter=4)

    story = []
    for raw_line in (text or "").splitlines():
        line = raw_line.strip()
        if not line:
            story.append(Spacer(1, 6))
            continue
        style = heading if _HEADING_RE.match(line) else body
        story.append(Paragraph(escape(line), style))
    if not story:
        story.append(Paragraph(escape(title), body))

    doc.build(story)
    return buffer.getvalue()


def extract_text_from_pdf(data: bytes, max_pages: int = MAX_PDF_PAGES) -> str:
    """Extract page text from a PDF; raises ValueError for unreadable or image-only files."""
    try:
        reader = PdfReader(io.BytesIO(data))
        page_count = len(reader.pages)
        parts = []
        for index in range(min(page_count, max_pages)):
            page_text = (reader.pages[index].extract_text() or "").strip()
            if page_text:
                parts.append(page_text)
    except (PdfReadError, ValueError, KeyError, TypeError) as exc:
        raise ValueError(f"Could not read PDF: {exc}") from exc

    if page_count > max_pages:
        logger.warning("PDF has %s pages; only processed first %s", page_count, max_pages)

    text = "\n\n".join(parts).strip()
    if not text:
        raise ValueError("No extractable text found in PDF.")
    return text
