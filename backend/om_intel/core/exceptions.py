"""Custom exception hierarchy.

Every error carries a stable machine-readable ``code`` and the HTTP status the
API layer answers with.
"""

from typing import Any


class AppError(Exception):
    """Base application exception."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    @property
    def headers(self) -> dict[str, str]:
        """Extra response headers for this error."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        result: dict[str, Any] = {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }
        if self.details:
            result["error"]["details"] = self.details
        return result


class InvalidRequestError(AppError):
    """Malformed request input."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, code="INVALID_REQUEST")


class InvalidPDFError(AppError):
    """Downloaded bytes are not a usable PDF."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, code="INVALID_PDF")


class FileNotFoundInStorageError(AppError):
    """Uploaded object could not be fetched from storage."""

    status_code = 409

    def __init__(self, message: str, object_key: str | None = None, attempts: int = 0):
        super().__init__(
            message,
            code="FILE_NOT_FOUND",
            details={"objectKey": object_key, "attempts": attempts, "retryable": True},
        )


class DocumentNotFoundError(AppError):
    """No status record exists for the referenced document."""

    status_code = 409

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(
            f"Document context not found: {document_id}",
            code="CONTEXT_NOT_FOUND",
            details={"documentId": document_id, "retryable": True},
        )


class NoContentError(AppError):
    """PDF parsed but produced no extractable text."""

    status_code = 422

    def __init__(self, message: str = "No extractable content in PDF"):
        super().__init__(message, code="NO_CONTENT")


class ContextUnavailableError(AppError):
    """Document context is required but cannot be supplied."""

    status_code = 424

    def __init__(self, message: str, document_id: str | None = None):
        details = {"documentId": document_id} if document_id else None
        super().__init__(message, code="CONTEXT_UNAVAILABLE", details=details)


class ComparisonRequiresDocsError(AppError):
    """Comparison query without a second document reference."""

    status_code = 424

    def __init__(self, message: str = "Comparison requires at least two documents"):
        super().__init__(message, code="COMPARISON_REQUIRES_DOCS")


class DocumentFailedError(AppError):
    """Document processing ended in the error state."""

    status_code = 500

    def __init__(self, document_id: str, error_message: str | None):
        super().__init__(
            error_message or "Document processing failed",
            code="CONTEXT_UNAVAILABLE",
            details={"documentId": document_id},
        )


class DocumentNotReadyError(AppError):
    """Document is still indexing; the caller should retry later."""

    status_code = 202

    def __init__(
        self,
        document_id: str,
        retry_after: int,
        parts: int,
        required_parts: int,
        pages_indexed: int,
    ):
        self.document_id = document_id
        self.retry_after = retry_after
        self.parts = parts
        self.required_parts = required_parts
        self.pages_indexed = pages_indexed
        super().__init__("Document is still processing", code="DOCUMENT_PROCESSING")

    @property
    def headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after)}

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "processing",
            "code": self.code,
            "documentId": self.document_id,
            "parts": self.parts,
            "requiredParts": self.required_parts,
            "pagesIndexed": self.pages_indexed,
            "retryAfter": self.retry_after,
        }


class StorageError(AppError):
    """Context store write could not be verified."""

    status_code = 500

    def __init__(self, message: str, document_id: str | None = None):
        details = {"documentId": document_id} if document_id else None
        super().__init__(message, code="STORAGE_ERROR", details=details)


class StoreUnavailableError(AppError):
    """Ephemeral context store cannot be reached."""

    status_code = 503

    def __init__(self, message: str = "Ephemeral store unavailable"):
        super().__init__(message, code="KV_UNAVAILABLE")


class IngestTimeoutError(AppError):
    """Fast pass exceeded its wall-clock budget."""

    status_code = 504

    def __init__(self, budget_seconds: float):
        super().__init__(
            f"Document ingestion exceeded {budget_seconds:.0f}s",
            code="INGEST_TIMEOUT",
        )


class LLMError(AppError):
    """LLM communication error."""

    status_code = 502

    def __init__(self, message: str, provider: str):
        self.provider = provider
        super().__init__(message, code="LLM_ERROR", details={"provider": provider})


class ConfigurationError(AppError):
    """Configuration error."""

    def __init__(self, message: str):
        super().__init__(message, code="CONFIG_ERROR")
