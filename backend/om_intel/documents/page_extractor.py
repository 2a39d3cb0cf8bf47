"""Per-page text extraction with an OCR fallback for sparse or numeric pages."""

from __future__ import annotations

import re
import string
from dataclasses import dataclass

from om_intel.core.logging import get_logger
from om_intel.core.protocols import OCREngine, PageHandle
from om_intel.documents.ocr import OCRUnavailableError
from om_intel.documents.pdf_backend import RasterizationUnavailableError

logger = get_logger(__name__)

# Characters counted as meaningful text on a financial document page
_OUTSIDE_ALLOW_LIST = re.compile(r"[^A-Za-z0-9$€£.,:%&()/+\- \n]")
_DIGIT = re.compile(r"[0-9]")

# Tesseract takes literal characters, not ranges
OCR_WHITELIST = string.digits + "$€£.,:%&()/+-" + string.ascii_letters
OCR_CONFIG = f"--oem 1 --psm 6 -c tessedit_char_whitelist={OCR_WHITELIST}"

_HORIZONTAL_SPACE = re.compile(r"[ \t\f\v ]+")
_BLANK_RUN = re.compile(r"\n{3,}")


def _digit_misread(letter: str) -> re.Pattern[str]:
    """A lone letter touching a digit, as in "1O5" or "l,250"."""
    return re.compile(rf"(?<![A-Za-z]){letter}(?![A-Za-z])(?:(?<=[0-9]{letter})|(?=[.,]?[0-9]))")


_DIGIT_L = _digit_misread("l")
_DIGIT_O = _digit_misread("O")


@dataclass(frozen=True)
class ExtractionOptions:
    """Knobs for one page extraction."""

    dpi: int = 300
    ocr_char_threshold: int = 400
    digit_ratio_threshold: float = 0.35
    perform_ocr: bool = True
    language: str = "eng"


def normalize_whitespace(text: str) -> str:
    """Collapse horizontal whitespace, trim lines and cap blank-line runs."""
    lines = [_HORIZONTAL_SPACE.sub(" ", line).strip() for line in text.splitlines()]
    return _BLANK_RUN.sub("\n\n", "\n".join(lines)).strip()


def normalize_ocr_text(text: str) -> str:
    """Clean OCR output and repair common digit misreads."""
    text = normalize_whitespace(text)
    text = _DIGIT_L.sub("1", text)
    return _DIGIT_O.sub("0", text)


def text_density(text: str) -> tuple[int, float]:
    """Return ``(alpha_len, digit_ratio)`` for a page's native text."""
    allowed = _OUTSIDE_ALLOW_LIST.sub("", text)
    alpha_len = len(allowed)
    if alpha_len == 0:
        return 0, 0.0
    return alpha_len, len(_DIGIT.findall(allowed)) / alpha_len


def needs_ocr(alpha_len: int, digit_ratio: float, options: ExtractionOptions) -> bool:
    """Sparse pages and digit-heavy pages go through OCR."""
    return alpha_len < options.ocr_char_threshold or digit_ratio >= options.digit_ratio_threshold


class PageTextExtractor:
    """Chooses between the native text layer and OCR for a page."""

    def __init__(self, ocr_engine: OCREngine | None, default_options: ExtractionOptions | None = None):
        self.ocr_engine = ocr_engine
        self.default_options = default_options or ExtractionOptions()

    def extract(self, page: PageHandle, options: ExtractionOptions | None = None) -> str:
        """Extract one page's text. Blocking; callers offload it to a thread."""
        options = options or self.default_options
        native = normalize_whitespace(page.get_text_layer())

        if not options.perform_ocr or self.ocr_engine is None:
            return native

        alpha_len, digit_ratio = text_density(native)
        if not needs_ocr(alpha_len, digit_ratio, options):
            return native

        try:
            image = page.render(options.dpi)
        except RasterizationUnavailableError as e:
            logger.warning("ocr_skipped_no_rasterizer", page=page.page_number, error=str(e))
            return native

        try:
            result = self.ocr_engine.recognize(image, options.language, OCR_CONFIG)
        except OCRUnavailableError as e:
            logger.warning("ocr_failed", page=page.page_number, error=str(e))
            return native

        ocr_text = normalize_ocr_text(result.text)
        logger.info(
            "ocr_used",
            page=page.page_number,
            alpha_len=alpha_len,
            digit_ratio=round(digit_ratio, 3),
            ocr_chars=len(ocr_text),
            confidence=round(result.confidence, 1),
        )
        return f"{native}\n{ocr_text}".strip()
