"""pdfplumber implementation of the page handle capability interface."""

from __future__ import annotations

import io

import pdfplumber
from PIL import Image

from om_intel.core.exceptions import InvalidPDFError
from om_intel.core.logging import get_logger

logger = get_logger(__name__)


class RasterizationUnavailableError(RuntimeError):
    """The runtime cannot render PDF pages to images."""


class PdfplumberPage:
    """One page of a pdfplumber document."""

    def __init__(self, page: pdfplumber.page.Page, page_number: int):
        self._page = page
        self.page_number = page_number

    def get_text_layer(self) -> str:
        return self._page.extract_text() or ""

    def render(self, dpi: int) -> Image.Image:
        try:
            return self._page.to_image(resolution=dpi).original
        except Exception as e:
            raise RasterizationUnavailableError(str(e)) from e

    def extract_tables(self) -> list[list[list[str | None]]]:
        return self._page.extract_tables() or []

    def release(self) -> None:
        """Drop cached layout objects once the page is done."""
        self._page.close()


class PdfDocument:
    """An opened PDF exposing its pages as handles."""

    def __init__(self, pdf: pdfplumber.PDF):
        self._pdf = pdf

    def close(self) -> None:
        self._pdf.close()

    @property
    def page_count(self) -> int:
        try:
            return len(self._pdf.pages)
        except Exception as e:
            raise InvalidPDFError(f"Unable to read PDF page tree: {e}") from e

    def page(self, page_number: int) -> PdfplumberPage:
        """Handle for a 1-based page number."""
        return PdfplumberPage(self._pdf.pages[page_number - 1], page_number)


def load_pdf(data: bytes) -> PdfDocument:
    """Open complete PDF bytes. The caller closes the document.

    pdfminer reads the cross-reference table at the end of the file, so a
    leading byte range of a larger PDF does not open.

    Raises:
        InvalidPDFError: the bytes cannot be opened as a PDF
    """
    try:
        pdf = pdfplumber.open(io.BytesIO(data))
    except Exception as e:
        logger.warning("pdf_open_failed", error=str(e), size=len(data))
        raise InvalidPDFError(f"Unable to open PDF: {e}") from e
    return PdfDocument(pdf)
