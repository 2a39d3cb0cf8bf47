"""Document models shared by ingestion, the context store and the chat gate."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Any, Literal

DocumentStatus = Literal["processing", "ready", "error"]
ChunkPhase = Literal["fast", "background"]

TERMINAL_STATUSES = frozenset({"ready", "error"})


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class ChunkMetadata:
    """Metadata for a document chunk."""

    type: str = "text"
    token_estimate: int = 0
    phase: ChunkPhase = "fast"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "tokenEstimate": self.token_estimate, "phase": self.phase}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChunkMetadata:
        return cls(
            type=data.get("type", "text"),
            token_estimate=int(data.get("tokenEstimate", 0)),
            phase=data.get("phase", "fast"),
        )


@dataclass
class Chunk:
    """A chunk of indexed document text."""

    id: str
    text: str
    page: int
    chunk_index: int
    metadata: ChunkMetadata = field(default_factory=ChunkMetadata)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "page": self.page,
            "chunkIndex": self.chunk_index,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Chunk:
        return cls(
            id=data["id"],
            text=data["text"],
            page=int(data["page"]),
            chunk_index=int(data["chunkIndex"]),
            metadata=ChunkMetadata.from_dict(data.get("metadata") or {}),
        )

    def reindexed(self, chunk_index: int) -> Chunk:
        """Copy of this chunk placed at a new position in the document."""
        return replace(self, id=f"chunk-{chunk_index}", chunk_index=chunk_index)


@dataclass
class DocumentMeta:
    """Document-level facts stored next to the chunks."""

    pages_indexed: int = 0
    processing_time_ms: int = 0
    content_hash: str | None = None
    original_filename: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "pagesIndexed": self.pages_indexed,
            "processingTimeMs": self.processing_time_ms,
            "contentHash": self.content_hash,
            "originalFilename": self.original_filename,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DocumentMeta:
        return cls(
            pages_indexed=int(data.get("pagesIndexed", 0)),
            processing_time_ms=int(data.get("processingTimeMs", 0)),
            content_hash=data.get("contentHash"),
            original_filename=data.get("originalFilename", ""),
        )


@dataclass
class DocumentContext:
    """The retrievable payload for one ingested document."""

    document_id: str
    owner_id: str
    chunks: list[Chunk] = field(default_factory=list)
    meta: DocumentMeta = field(default_factory=DocumentMeta)

    def to_dict(self) -> dict[str, Any]:
        return {
            "documentId": self.document_id,
            "ownerId": self.owner_id,
            "chunks": [chunk.to_dict() for chunk in self.chunks],
            "meta": self.meta.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DocumentContext:
        return cls(
            document_id=data["documentId"],
            owner_id=data["ownerId"],
            chunks=[Chunk.from_dict(item) for item in data.get("chunks", [])],
            meta=DocumentMeta.from_dict(data.get("meta") or {}),
        )


@dataclass
class StatusRecord:
    """Lightweight progress marker for one document.

    ``parts`` and ``pages_indexed`` only grow, and once ``ready`` or ``error``
    is reached the status itself is final. All writers go through :meth:`merge`.
    """

    document_id: str
    status: DocumentStatus = "processing"
    parts: int = 0
    pages_indexed: int = 0
    content_hash: str | None = None
    error_message: str | None = None
    background_processing: bool = False
    updated_at: int = field(default_factory=now_ms)

    def merge(
        self,
        status: DocumentStatus,
        error_message: str | None = None,
        *,
        parts: int | None = None,
        pages_indexed: int | None = None,
        content_hash: str | None = None,
        background_processing: bool | None = None,
    ) -> StatusRecord:
        """Return the record that results from applying an update."""
        next_status = self.status if self.status in TERMINAL_STATUSES else status

        if next_status == "error":
            next_error = error_message or self.error_message or "Document processing failed"
        else:
            next_error = None

        return StatusRecord(
            document_id=self.document_id,
            status=next_status,
            parts=max(self.parts, parts) if parts is not None else self.parts,
            pages_indexed=(
                max(self.pages_indexed, pages_indexed)
                if pages_indexed is not None
                else self.pages_indexed
            ),
            content_hash=content_hash or self.content_hash,
            error_message=next_error,
            background_processing=(
                background_processing
                if background_processing is not None
                else self.background_processing
            ),
            updated_at=now_ms(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "documentId": self.document_id,
            "status": self.status,
            "parts": self.parts,
            "pagesIndexed": self.pages_indexed,
            "contentHash": self.content_hash,
            "errorMessage": self.error_message,
            "backgroundProcessing": self.background_processing,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StatusRecord:
        return cls(
            document_id=data["documentId"],
            status=data.get("status", "processing"),
            parts=int(data.get("parts", 0)),
            pages_indexed=int(data.get("pagesIndexed", 0)),
            content_hash=data.get("contentHash"),
            error_message=data.get("errorMessage"),
            background_processing=bool(data.get("backgroundProcessing", False)),
            updated_at=int(data.get("updatedAt", 0)),
        )


@dataclass
class Citation:
    """Page-anchored evidence for a deal point."""

    page: int
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"page": self.page, "text": self.text}


@dataclass
class DealPoints:
    """Cited bullet summary of a document's key commercial terms."""

    bullets: list[str]
    citations: list[Citation]
    content_hash: str
    extractor_version: str
    source: Literal["regex", "ai"]
    created_at: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "bullets": list(self.bullets),
            "citations": [citation.to_dict() for citation in self.citations],
            "createdAt": self.created_at,
            "contentHash": self.content_hash,
            "extractorVersion": self.extractor_version,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DealPoints:
        return cls(
            bullets=list(data.get("bullets", [])),
            citations=[
                Citation(page=int(item.get("page", 0)), text=str(item.get("text", "")))
                for item in data.get("citations", [])
            ],
            content_hash=data.get("contentHash", ""),
            extractor_version=data.get("extractorVersion", ""),
            source=data.get("source", "regex"),
            created_at=int(data.get("createdAt", 0)),
        )


@dataclass
class PageText:
    """Extracted text of a single PDF page."""

    page_number: int
    text: str
    tables: list[list[list[str | None]]] = field(default_factory=list)


@dataclass
class IngestResult:
    """Outcome of the synchronous fast pass."""

    document_id: str
    title: str
    pages_indexed: int
    status: DocumentStatus
    background_processing: bool
    content_hash: str | None
    chunk_count: int
    processing_time_ms: int
