"""Page-aware greedy chunker and content fingerprinting."""

from __future__ import annotations

import hashlib
from collections.abc import Callable, Sequence

from om_intel.core.logging import get_logger
from om_intel.documents.models import Chunk, ChunkMetadata, ChunkPhase, PageText

logger = get_logger(__name__)

CONTENT_HASH_LENGTH = 40


def compute_content_hash(data: bytes, length: int = CONTENT_HASH_LENGTH) -> str:
    """SHA-256 of the raw uploaded bytes, truncated to ``length`` hex chars."""
    return hashlib.sha256(data).hexdigest()[:length]


def split_text(text: str, chunk_size: int) -> list[str]:
    """Split text greedily into pieces of at most ``chunk_size`` characters.

    A cut moves back to the last whitespace when that whitespace lies in the
    second half of the window; otherwise the window is cut hard.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    pieces = []
    remaining = text.strip()
    while remaining:
        if len(remaining) <= chunk_size:
            pieces.append(remaining)
            break

        window = remaining[:chunk_size]
        cut = max(window.rfind(" "), window.rfind("\n"))
        if cut < chunk_size // 2:
            cut = chunk_size

        piece = remaining[:cut].strip()
        if piece:
            pieces.append(piece)
        remaining = remaining[cut:].lstrip()

    return pieces


def format_table(rows: Sequence[Sequence[str | None]]) -> str:
    """Render table rows as pipe-separated lines, skipping empty rows."""
    lines = []
    for row in rows:
        cells = [(cell or "").replace("\n", " ").strip() for cell in row]
        if any(cells):
            lines.append(" | ".join(cells))
    return "\n".join(lines)


class DocumentChunker:
    """Turns per-page text into ordered chunks that never span two pages."""

    def __init__(self, token_counter: Callable[[str], int]):
        self.token_counter = token_counter

    def chunk(
        self,
        pages: Sequence[PageText],
        chunk_size: int,
        phase: ChunkPhase,
        start_index: int = 0,
    ) -> list[Chunk]:
        """Chunk pages in order.

        Args:
            pages: Extracted pages, ascending by page number
            chunk_size: Character budget per chunk
            phase: Ingestion phase recorded on every chunk
            start_index: ``chunk_index`` of the first produced chunk

        Returns:
            Chunks with consecutive ``chunk_index`` values
        """
        chunks: list[Chunk] = []
        index = start_index

        for page in sorted(pages, key=lambda p: p.page_number):
            pieces = [("text", piece) for piece in split_text(page.text, chunk_size)]
            for table in page.tables:
                rendered = format_table(table)
                pieces.extend(("table", piece) for piece in split_text(rendered, chunk_size))

            for chunk_type, piece in pieces:
                chunks.append(
                    Chunk(
                        id=f"chunk-{index}",
                        text=piece,
                        page=page.page_number,
                        chunk_index=index,
                        metadata=ChunkMetadata(
                            type=chunk_type,
                            token_estimate=self.token_counter(piece),
                            phase=phase,
                        ),
                    )
                )
                index += 1

        logger.debug(
            "document_chunked",
            phase=phase,
            pages=len(pages),
            chunks=len(chunks),
            chunk_size=chunk_size,
        )
        return chunks
