"""Prompt assembly for grounded answers."""

from __future__ import annotations

from collections.abc import Sequence

from om_intel.chat.retriever import RetrievedChunk

BASE_SYSTEM_PROMPT = (
    "You are an analyst for commercial real estate offering memoranda. "
    "Answer using the provided document context when it is present and cite "
    "pages as [p<number>]. If the context does not contain the answer, say so."
)

GENERAL_SYSTEM_PROMPT = (
    "You are an assistant for commercial real estate professionals. "
    "No document is attached to this conversation; answer from general knowledge "
    "and suggest uploading an offering memorandum for document-specific questions."
)

FALLBACK_MESSAGE = (
    "I wasn't able to generate a response. Could you rephrase your question "
    "or confirm a document was uploaded?"
)

CONTEXT_HEADER = "Context:"


def build_context_block(
    chunks: Sequence[RetrievedChunk],
    max_chars: int = 8000,
    group_by_document: bool = False,
) -> str:
    """Render chunks as ``[p{page}] text`` lines under a ``Context:`` header.

    Lines that would push the block past ``max_chars`` are dropped along with
    everything after them.
    """
    lines = [CONTEXT_HEADER]
    size = len(CONTEXT_HEADER) + 1
    current_document = None

    for chunk in chunks:
        if group_by_document and chunk.document_id != current_document:
            heading = f"Document {chunk.document_id}:"
            if size + len(heading) + 1 > max_chars:
                break
            lines.append(heading)
            size += len(heading) + 1
            current_document = chunk.document_id

        snippet = f"[p{chunk.page}] {chunk.text}".strip()
        if size + len(snippet) + 1 > max_chars:
            break
        lines.append(snippet)
        size += len(snippet) + 1

    return "\n".join(lines).strip()


def augment_messages(
    chunks: Sequence[RetrievedChunk],
    messages: list[dict[str, str]],
    max_chars: int = 8000,
    group_by_document: bool = False,
) -> list[dict[str, str]]:
    """Prepend the analyst prompt and the context block to the conversation."""
    return [
        {"role": "system", "content": BASE_SYSTEM_PROMPT},
        {"role": "system", "content": build_context_block(chunks, max_chars, group_by_document)},
        *messages,
    ]


def general_messages(messages: list[dict[str, str]]) -> list[dict[str, str]]:
    return [{"role": "system", "content": GENERAL_SYSTEM_PROMPT}, *messages]
