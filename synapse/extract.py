# synapse/extract.py
"""
Text extraction for uploaded documents.

Supported content types:
 - text/* and application/json, decoded as UTF-8 (invalid bytes replaced)
 - application/pdf, text extracted page by page with pypdf

Anything else raises UnsupportedFileType; the caller decides what that means
for the document.
"""
import io
import logging
from typing import List, Tuple

from pypdf import PdfReader

logger = logging.getLogger(__name__)

PDF_TYPES = ("application/pdf", "application/x-pdf")
TEXT_TYPES = ("application/json",)


class UnsupportedFileType(Exception):
    def __init__(self, content_type: str):
        super().__init__(f"Unsupported file type: {content_type!r}")
        self.content_type = content_type


def _base_type(content_type: str) -> str:
    # "text/plain; charset=utf-8" -> "text/plain"
    return (content_type or "").split(";", 1)[0].strip().lower()


def is_supported(content_type: str) -> bool:
    ct = _base_type(content_type)
    return ct.startswith("text/") or ct in TEXT_TYPES or ct in PDF_TYPES


def extract_pages_from_pdf(data: bytes) -> List[Tuple[int, str]]:
    """
    Extract text by page from a PDF. Returns list of tuples (page_number (1-based), text).
    Keeps pages empty-string if extraction fails for that page to preserve page numbering.
    """
    reader = PdfReader(io.BytesIO(data))
    pages_text = []
    for i, page in enumerate(reader.pages):
        try:
            text = page.extract_text() or ""
        except Exception as e:
            logger.warning("Failed to extract text from page %s: %s", i + 1, e)
            text = ""
        pages_text.append((i + 1, text))
    return pages_text


def extract_text(data: bytes, content_type: str) -> str:
    ct = _base_type(content_type)
    if ct in PDF_TYPES:
        pages = extract_pages_from_pdf(data)
        logger.debug("Extracted %d pdf pages", len(pages))
        return "\n".join(text for _, text in pages if text)
    if ct.startswith("text/") or ct in TEXT_TYPES:
        return data.decode("utf-8", errors="replace")
    raise UnsupportedFileType(content_type)
