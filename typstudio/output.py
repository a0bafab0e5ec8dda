"""Turn engine documents into what the preview and exports consume."""

from __future__ import annotations

import html
import logging
from io import BytesIO

from .engine import Document, RenderMode

logger = logging.getLogger(__name__)

FIRST_PAGE_OPEN = "<div>"
NEXT_PAGE_OPEN = '<div style="margin-top: 10px; border-top: 1px solid #ccc; padding-top: 10px;">'
PAGE_CLOSE = "</div>"


def format_pages(document: Document) -> str:
    """Join per-page fragments; every page after the first gets a divider."""
    parts: list[str] = []
    for index, page in enumerate(document.pages):
        parts.append(FIRST_PAGE_OPEN if index == 0 else NEXT_PAGE_OPEN)
        parts.append(page.fragment)
        parts.append(PAGE_CLOSE)
    combined = "".join(parts)
    logger.info("Combined SVG generated for %d pages, %d bytes", len(document.pages), len(combined))
    return combined


def format_binary(document: Document) -> bytes:
    if document.data is None:
        raise ValueError("Document carries no binary payload")
    return document.data


def format_document(document: Document, mode: RenderMode) -> str | bytes:
    if mode is RenderMode.PDF:
        return format_binary(document)
    return format_pages(document)


def preview_document(fragment: str, title: str = "typstudio") -> str:
    """Wrap a page fragment in a standalone HTML page."""
    escaped_title = html.escape(title)
    return f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <title>{escaped_title}</title>
  <style>
    body {{ margin: 0; padding: 16px; background: #f4f4f4; }}
    .typstudio-pages {{ max-width: 900px; margin: 0 auto; }}
    .typstudio-pages svg {{ display: block; width: 100%; height: auto; background: #fff; }}
  </style>
</head>
<body>
  <div class="typstudio-pages">{fragment}</div>
</body>
</html>
"""


def stamp_pdf_page_numbers(pdf_bytes: bytes, font_size: float = 9.0) -> bytes:
    """Overlay a centered `N of M` footer on every page of a PDF."""
    if not pdf_bytes:
        raise ValueError("Empty PDF payload")

    try:
        from pypdf import PdfReader, PdfWriter
    except Exception as exc:
        raise RuntimeError("Missing dependency 'pypdf' for PDF page numbering") from exc

    try:
        from reportlab.pdfgen import canvas
    except Exception as exc:
        raise RuntimeError("Missing dependency 'reportlab' for PDF page numbering") from exc

    reader = PdfReader(BytesIO(pdf_bytes))
    page_total = len(reader.pages)
    if page_total <= 0:
        raise RuntimeError("Generated PDF has no pages")

    writer = PdfWriter()
    for page_number, page in enumerate(reader.pages, start=1):
        width = float(page.mediabox.width)
        height = float(page.mediabox.height)
        if width > 0 and height > 0:
            overlay_buffer = BytesIO()
            footer = canvas.Canvas(overlay_buffer, pagesize=(width, height))
            footer.setFont("Helvetica", font_size)
            text = f"{page_number} of {page_total}"
            text_width = footer.stringWidth(text, "Helvetica", font_size)
            # Footer sits inside the bottom margin, clear of typical body text.
            footer.drawString(max(0.0, (width - text_width) / 2.0), max(12.0, height * 0.025), text)
            footer.save()
            overlay_buffer.seek(0)
            overlay = PdfReader(overlay_buffer)
            if overlay.pages:
                page.merge_page(overlay.pages[0])
        writer.add_page(page)

    output = BytesIO()
    writer.write(output)
    return output.getvalue()
