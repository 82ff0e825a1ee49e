from typing import Callable

import fitz
import pytest

PdfFactory = Callable[..., bytes]


@pytest.fixture
def pdf_factory() -> PdfFactory:
    """Build an in-memory PDF with one line of text per page."""

    def make(page_count: int, text: str = "Page {n}") -> bytes:
        document = fitz.open()
        try:
            for number in range(1, page_count + 1):
                page = document.new_page()
                page.insert_text((72, 72), text.format(n=number))
            return document.tobytes()
        finally:
            document.close()

    return make
