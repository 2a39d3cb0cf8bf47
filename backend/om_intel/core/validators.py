"""Input validation for upload references, PDF bytes and document ids."""

import re
from urllib.parse import unquote

PDF_MAGIC_BYTES = b"%PDF"

MIN_PDF_SIZE_BYTES = 100
MAX_PDF_SIZE_BYTES = 50 * 1024 * 1024

DOCUMENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
DOCUMENT_ID_MAX_LENGTH = 128


# =============================================================================
# PDF Validation
# =============================================================================


def quick_validate_pdf(
    content: bytes,
    total_size: int | None = None,
    min_size: int = MIN_PDF_SIZE_BYTES,
    max_size: int = MAX_PDF_SIZE_BYTES,
) -> tuple[bool, str | None]:
    """Cheap structural check run before any parsing.

    Args:
        content: Downloaded bytes (possibly only the leading slice)
        total_size: Full object size when known from a range response
        min_size: Smallest acceptable file
        max_size: Largest acceptable file

    Returns:
        Tuple of (is_valid, error_message). Returns (True, None) if valid.

    Examples:
        >>> quick_validate_pdf(b"%PDF-1.7" + b"0" * 200)
        (True, None)

        >>> quick_validate_pdf(b"hello")
        (False, 'File too small')
    """
    size = total_size if total_size is not None else len(content)

    if len(content) < min_size:
        return False, "File too small"

    if size > max_size:
        return False, f"File exceeds maximum of {max_size / (1024 * 1024):.0f}MB"

    if not content.startswith(PDF_MAGIC_BYTES):
        return False, "Not a valid PDF file"

    return True, None


# =============================================================================
# Identifier Validation
# =============================================================================


def validate_document_id(document_id: str | None) -> tuple[bool, str | None]:
    """Validate a document id received from a client.

    Examples:
        >>> validate_document_id("mem-0f9c2a")
        (True, None)

        >>> validate_document_id("../etc")
        (False, 'documentId contains invalid characters')
    """
    if not document_id:
        return False, "documentId is required"

    if len(document_id) > DOCUMENT_ID_MAX_LENGTH:
        return False, f"documentId exceeds {DOCUMENT_ID_MAX_LENGTH} characters"

    if not DOCUMENT_ID_PATTERN.fullmatch(document_id):
        return False, "documentId contains invalid characters"

    return True, None


def title_from_object_key(object_key: str) -> str:
    """Human title from an object key: last path segment without ``.pdf``.

    Examples:
        >>> title_from_object_key("uploads/u1/Tampa%20Retail%20OM.pdf")
        'Tampa Retail OM'
    """
    name = unquote(object_key.rstrip("/").rsplit("/", 1)[-1])
    if name.lower().endswith(".pdf"):
        name = name[:-4]
    return name or "Untitled document"
