"""PDF text extraction utilities."""

import io
import logging

import pdfplumber

logger = logging.getLogger(__name__)


def extract_text_pages(content: bytes) -> list[dict]:
    """
    Extract text from each page of a PDF using pdfplumber.
    Returns a list of {page_number, text} dicts.
    """
    pages = []
    with pdfplumber.open(io.BytesIO(content)) as pdf:
        for i, page in enumerate(pdf.pages):
            text = page.extract_text() or ""
            pages.append({"page_number": i + 1, "text": text})
    logger.debug("Extracted text from %d PDF pages", len(pages))
    return pages


def extract_full_text(content: bytes) -> str:
    """Extract all text from a PDF, concatenated."""
    pages = extract_text_pages(content)
    return "\n".join(p["text"] for p in pages)
