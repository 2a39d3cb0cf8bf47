"""Tests for retrieval and prompt augmentation."""

import pytest

from om_intel.chat.augment import (
    BASE_SYSTEM_PROMPT,
    augment_messages,
    build_context_block,
)
from om_intel.chat.retriever import ContextRetriever, RetrievedChunk, query_terms
from om_intel.documents.models import Chunk, DocumentContext


def chunks_for(texts: list[str]) -> list[Chunk]:
    return [Chunk(id=f"chunk-{i}", text=text, page=i + 1, chunk_index=i) for i, text in enumerate(texts)]


class TestQueryTerms:
    def test_stopwords_and_short_tokens_dropped(self):
        assert query_terms("What is the NOI for this property?") == ["noi", "property"]


class TestContextRetriever:
    """Test cases for ContextRetriever."""

    def test_matching_chunks_keep_document_order(self):
        chunks = chunks_for(["rent roll", "parking", "rent growth rent", "zoning"])

        selected = ContextRetriever.select(chunks, "rent", k=2)

        assert [c.id for c in selected] == ["chunk-0", "chunk-2"]

    def test_top_k_by_score(self):
        chunks = chunks_for(["rent", "rent rent rent", "rent rent", "other"])

        selected = ContextRetriever.select(chunks, "rent", k=2)

        assert [c.id for c in selected] == ["chunk-1", "chunk-2"]

    def test_no_match_falls_back_to_first_k(self):
        chunks = chunks_for(["a", "b", "c"])
        assert [c.id for c in ContextRetriever.select(chunks, "zzz", k=2)] == ["chunk-0", "chunk-1"]

    def test_page_reference_boost(self):
        chunks = chunks_for(["rent", "rent", "nothing relevant"])

        selected = ContextRetriever.select(chunks, "rent", k=1, referenced_pages=[3])

        assert [c.page for c in selected] == [3]

    @pytest.mark.asyncio
    async def test_retrieve_truncates_and_checks_owner(self, store):
        context = DocumentContext("mem-1", "owner-a", chunks_for(["x" * 3000]))
        await store.set_context("mem-1", "owner-a", context)
        retriever = ContextRetriever(store)

        found = await retriever.retrieve("mem-1", "owner-a", "anything", k=8, max_chars=1000)

        assert len(found) == 1
        assert len(found[0].text) == 1000
        assert found[0].document_id == "mem-1"
        assert await retriever.retrieve("mem-1", "owner-b", "anything") == []


class TestAugment:
    """Test cases for context block construction."""

    def make(self, page: int, text: str, document_id: str = "mem-1") -> RetrievedChunk:
        return RetrievedChunk(document_id=document_id, chunk_id=f"chunk-{page}", page=page, text=text)

    def test_page_markers(self):
        block = build_context_block([self.make(1, "Cap rate 6%"), self.make(4, "NOI $1.2M")])
        assert block == "Context:\n[p1] Cap rate 6%\n[p4] NOI $1.2M"

    def test_capped_length(self):
        chunks = [self.make(i, "y" * 900) for i in range(1, 20)]

        block = build_context_block(chunks, max_chars=8000)

        assert len(block) <= 8000
        assert block.count("[p") == 8

    def test_grouped_per_document(self):
        chunks = [self.make(1, "first", "mem-a"), self.make(2, "second", "mem-b")]

        block = build_context_block(chunks, group_by_document=True)

        assert block == "Context:\nDocument mem-a:\n[p1] first\nDocument mem-b:\n[p2] second"

    def test_augment_prepends_system_messages(self):
        messages = [{"role": "user", "content": "What is the NOI?"}]

        augmented = augment_messages([self.make(1, "NOI $1.2M")], messages)

        assert augmented[0] == {"role": "system", "content": BASE_SYSTEM_PROMPT}
        assert augmented[1]["content"].startswith("Context:\n[p1]")
        assert augmented[2:] == messages
