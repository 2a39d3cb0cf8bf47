"""Keyword retrieval over a document's stored chunks."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from om_intel.core.logging import get_logger
from om_intel.core.protocols import ContextStore
from om_intel.documents.models import Chunk

logger = get_logger(__name__)

_TERM = re.compile(r"[a-z0-9$%.]+")
_STOPWORDS = frozenset(
    {
        "the", "and", "for", "are", "was", "what", "which", "who", "this", "that",
        "these", "those", "with", "from", "about", "tell", "give", "show", "does",
        "have", "has", "how", "why", "can", "you", "please", "there", "their", "into",
        "page", "document",
    }
)

PAGE_BOOST = 5.0


@dataclass
class RetrievedChunk:
    document_id: str
    chunk_id: str
    page: int
    text: str
    chunk_type: str = "text"


def query_terms(query: str) -> list[str]:
    """Lower-cased search terms with stopwords and short tokens removed."""
    terms = []
    for token in _TERM.findall(query.lower()):
        token = token.strip(".")
        if len(token) >= 3 and token not in _STOPWORDS and token not in terms:
            terms.append(token)
    return terms


def score_chunk(chunk: Chunk, terms: Sequence[str], referenced_pages: Sequence[int]) -> float:
    text = chunk.text.lower()
    score = float(sum(text.count(term) for term in terms))
    if chunk.page in referenced_pages:
        score += PAGE_BOOST
    return score


class ContextRetriever:
    """Selects the chunks of a stored context that best match a query.

    Matching chunks keep their document order. When nothing matches, the
    first ``k`` chunks are returned so a freshly uploaded document always
    yields some context.
    """

    def __init__(self, store: ContextStore):
        self.store = store

    async def retrieve(
        self,
        document_id: str,
        owner_id: str,
        query: str,
        k: int = 8,
        max_chars: int = 1000,
        referenced_pages: Sequence[int] = (),
    ) -> list[RetrievedChunk]:
        context = await self.store.get_context(document_id, owner_id)
        if context is None or not context.chunks:
            logger.info("retrieval_no_context", document_id=document_id)
            return []

        selected = self.select(context.chunks, query, k, referenced_pages)
        logger.debug(
            "retrieval_completed",
            document_id=document_id,
            available=len(context.chunks),
            selected=len(selected),
        )
        return [
            RetrievedChunk(
                document_id=document_id,
                chunk_id=chunk.id,
                page=chunk.page or 1,
                text=chunk.text[:max_chars],
                chunk_type=chunk.metadata.type,
            )
            for chunk in selected
        ]

    @staticmethod
    def select(
        chunks: Sequence[Chunk],
        query: str,
        k: int,
        referenced_pages: Sequence[int] = (),
    ) -> list[Chunk]:
        terms = query_terms(query)
        scored = [
            (score_chunk(chunk, terms, referenced_pages), position)
            for position, chunk in enumerate(chunks)
        ]
        matching = [item for item in scored if item[0] > 0]
        if not matching:
            return list(chunks[:k])

        top = sorted(matching, key=lambda item: (-item[0], item[1]))[:k]
        return [chunks[position] for _, position in sorted(top, key=lambda item: item[1])]
