"""Protocol interfaces for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from PIL import Image

    from om_intel.documents.models import (
        Chunk,
        DealPoints,
        DocumentContext,
        DocumentStatus,
        StatusRecord,
    )
    from om_intel.storage.object_storage import FetchedObject


@runtime_checkable
class LLMProvider(Protocol):
    """LLM communication interface."""

    async def generate(
        self,
        messages: list[dict[str, str]],
        **kwargs: Any,
    ) -> str:
        """Generate a single response.

        Keyword arguments ``max_tokens``, ``temperature`` and ``json_mode``
        are honoured by every provider. Upstream failures raise ``LLMError``.
        """
        ...


@runtime_checkable
class ContextStore(Protocol):
    """Ephemeral per-document status and chunk storage."""

    weakly_consistent: bool

    async def set_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error_message: str | None = None,
        *,
        parts: int | None = None,
        pages_indexed: int | None = None,
        content_hash: str | None = None,
        background_processing: bool | None = None,
    ) -> None:
        """Merge a status update into the stored record."""
        ...

    async def get_status(self, document_id: str) -> StatusRecord | None:
        """Get the status record, or None if unknown or expired."""
        ...

    async def set_context(self, document_id: str, owner_id: str, context: DocumentContext) -> bool:
        """Store the chunk payload. Returns False on any write failure."""
        ...

    async def get_context(self, document_id: str, owner_id: str) -> DocumentContext | None:
        """Get the chunk payload if it exists and belongs to ``owner_id``."""
        ...

    async def set_item(self, key: str, value: Any, ttl_ms: int | None = None) -> None:
        """Store a JSON-serializable cache value."""
        ...

    async def get_item(self, key: str) -> Any | None:
        """Get a cache value, or None."""
        ...

    async def is_available(self) -> bool:
        """Whether the backend can currently serve requests."""
        ...

    async def close(self) -> None:
        """Release backend connections."""
        ...


@runtime_checkable
class PageHandle(Protocol):
    """Capability interface over one page of an opened PDF."""

    page_number: int

    def get_text_layer(self) -> str:
        """Native text layer of the page."""
        ...

    def render(self, dpi: int) -> Image.Image:
        """Rasterize the page. Raises if no graphics backend is available."""
        ...

    def extract_tables(self) -> list[list[list[str | None]]]:
        """Tables detected on the page as rows of cells."""
        ...


@dataclass
class OCRResult:
    """Text recognized on an image plus the engine's mean confidence."""

    text: str
    confidence: float


@runtime_checkable
class OCREngine(Protocol):
    """Optical character recognition engine."""

    def recognize(self, image: Image.Image, language: str, config: str) -> OCRResult:
        """Recognize text on ``image``."""
        ...


@runtime_checkable
class DealPointsStrategy(Protocol):
    """One step of the deal-points extraction chain."""

    name: str

    async def extract(self, chunks: list[Chunk], content_hash: str) -> DealPoints | None:
        """Return deal points when found, None otherwise."""
        ...


@runtime_checkable
class ObjectStorage(Protocol):
    """Read access to uploaded objects."""

    async def fetch(self, url: str, byte_range: tuple[int, int] | None = None) -> FetchedObject:
        """Fetch an object, optionally only an inclusive byte range.

        Raises ``ObjectNotVisibleError`` for 404/409 answers and
        ``ObjectFetchError`` for anything else.
        """
        ...

    async def close(self) -> None:
        """Release the HTTP client."""
        ...
