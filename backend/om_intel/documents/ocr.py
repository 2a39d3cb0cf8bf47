"""Tesseract OCR engine."""

import pytesseract
from PIL import Image

from om_intel.core.logging import get_logger
from om_intel.core.protocols import OCRResult

logger = get_logger(__name__)


class OCRUnavailableError(RuntimeError):
    """The OCR engine could not run on this host or image."""


class TesseractOCREngine:
    """OCR through the tesseract binary via pytesseract.

    Words are regrouped into lines using Tesseract's block/paragraph/line
    numbering so the output keeps the page's reading order.
    """

    def __init__(self, tesseract_cmd: str | None = None, timeout_seconds: float = 8.0):
        self.timeout_seconds = timeout_seconds
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def recognize(self, image: Image.Image, language: str, config: str) -> OCRResult:
        try:
            data = pytesseract.image_to_data(
                image,
                lang=language,
                config=config,
                output_type=pytesseract.Output.DICT,
                timeout=self.timeout_seconds,
            )
        except pytesseract.TesseractNotFoundError as e:
            raise OCRUnavailableError("tesseract binary not found") from e
        except pytesseract.TesseractError as e:
            raise OCRUnavailableError(f"tesseract failed: {e.message}") from e
        except RuntimeError as e:
            # pytesseract kills the subprocess and raises a bare RuntimeError on timeout
            raise OCRUnavailableError(f"tesseract timed out after {self.timeout_seconds}s") from e

        lines: dict[tuple[int, int, int], list[str]] = {}
        confidences: list[float] = []

        for i, word in enumerate(data.get("text", [])):
            word = (word or "").strip()
            conf = float(data["conf"][i])
            if not word or conf < 0:
                continue
            key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
            lines.setdefault(key, []).append(word)
            confidences.append(conf)

        text = "\n".join(" ".join(words) for _, words in sorted(lines.items()))
        confidence = sum(confidences) / len(confidences) if confidences else 0.0

        logger.debug("ocr_completed", chars=len(text), confidence=round(confidence, 1))
        return OCRResult(text=text, confidence=confidence)
