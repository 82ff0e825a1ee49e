"""
PDF page access with PyMuPDF.
"""

import logging

import fitz

logger = logging.getLogger(__name__)


def _open(document: bytes) -> fitz.Document:
    if not document:
        raise ValueError("Document content is empty")
    try:
        return fitz.open(stream=document, filetype="pdf")
    except Exception as e:
        raise ValueError(f"Could not open document as PDF: {e}") from e


def count_pages(document: bytes) -> int:
    """Number of pages in a PDF.

    Raises:
        ValueError: If the bytes are empty or not a readable PDF
    """
    with _open(document) as pdf:
        return int(pdf.page_count)


def isolate_page(document: bytes, page_number: int) -> bytes:
    """
    Copy one page into a standalone PDF.

    Args:
        document: Source PDF bytes
        page_number: 1-indexed page to copy

    Returns:
        Bytes of a single-page PDF

    Raises:
        ValueError: If the page number is out of range or the document is unreadable
    """
    with _open(document) as source:
        if page_number < 1 or page_number > source.page_count:
            raise ValueError(f"Page {page_number} out of range (document has {source.page_count} pages)")

        single = fitz.open()
        try:
            single.insert_pdf(source, from_page=page_number - 1, to_page=page_number - 1)
            return bytes(single.tobytes())
        finally:
            single.close()
