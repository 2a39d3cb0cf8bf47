"""Chat orchestration: intent, readiness gate, retrieval and completion."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from om_intel.chat.augment import FALLBACK_MESSAGE, augment_messages, general_messages
from om_intel.chat.gate import ChatContextGate
from om_intel.chat.intent import IntentClassification, IntentClassifier
from om_intel.chat.retriever import ContextRetriever, RetrievedChunk
from om_intel.core.config import GateConfig
from om_intel.core.exceptions import (
    ComparisonRequiresDocsError,
    ContextUnavailableError,
    InvalidRequestError,
    StoreUnavailableError,
)
from om_intel.core.logging import get_logger
from om_intel.core.protocols import ContextStore, LLMProvider
from om_intel.documents.models import DealPoints
from om_intel.ingestion.deal_points import DealPointsService
from om_intel.utils.token_counter import get_model_token_limit, truncate_messages

logger = get_logger(__name__)


@dataclass
class ChatCommand:
    """One chat turn as received from the client."""

    messages: list[dict[str, str]]
    document_id: str | None = None
    compare_document_id: str | None = None
    document_ids: list[str] = field(default_factory=list)
    requires_context: bool | None = None

    def referenced_documents(self) -> list[str]:
        """Distinct document ids in the order the client gave them."""
        ordered: list[str] = []
        for document_id in [self.document_id, self.compare_document_id, *self.document_ids]:
            if document_id and document_id not in ordered:
                ordered.append(document_id)
        return ordered

    def latest_user_message(self) -> str:
        for message in reversed(self.messages):
            if message.get("role") == "user" and message.get("content", "").strip():
                return message["content"]
        raise InvalidRequestError("At least one user message is required")


@dataclass
class Source:
    document_id: str
    page: int
    chunk_id: str | None = None


@dataclass
class ChatReply:
    message: str
    document_ids: list[str]
    intent: IntentClassification
    sources: list[Source] = field(default_factory=list)
    deal_points_cached: bool = False


def format_deal_points(deal_points: DealPoints) -> str:
    lines = ["Key deal points:"]
    lines.extend(f"- {bullet}" for bullet in deal_points.bullets)
    pages = sorted({citation.page for citation in deal_points.citations})
    if pages:
        lines.append("")
        lines.append("Cited pages: " + ", ".join(f"p{page}" for page in pages))
    return "\n".join(lines)


class ChatService:
    """Answers chat turns, grounded in ingested documents when they are referenced."""

    def __init__(
        self,
        store: ContextStore,
        classifier: IntentClassifier,
        gate: ChatContextGate,
        retriever: ContextRetriever,
        deal_points: DealPointsService,
        llm: LLMProvider,
        config: GateConfig,
        model: str = "gpt-4o-mini",
        ephemeral_prefix: str = "mem-",
        history_limiter: Callable[[list[dict[str, str]]], list[dict[str, str]]] | None = None,
    ):
        self.store = store
        self.classifier = classifier
        self.gate = gate
        self.retriever = retriever
        self.deal_points = deal_points
        self.llm = llm
        self.config = config
        self.model = model
        self.ephemeral_prefix = ephemeral_prefix
        self._history_limiter = history_limiter

    async def chat(
        self,
        command: ChatCommand,
        owner_id: str,
        request_id: str | None = None,
    ) -> ChatReply:
        """Answer the latest user message.

        Raises:
            InvalidRequestError: no user message
            ContextUnavailableError: grounding required but unavailable
            ComparisonRequiresDocsError: comparison with fewer than two documents
            StoreUnavailableError: the context store cannot be reached
            DocumentNotFoundError, DocumentFailedError, DocumentNotReadyError:
                from the readiness gate
            LLMError: the completion failed
        """
        query = command.latest_user_message()
        document_ids = command.referenced_documents()
        intent = self.classifier.classify(
            query,
            has_document_id=bool(document_ids),
            client_override=command.requires_context,
        )
        logger.info(
            "chat_intent",
            request_id=request_id,
            intent=intent.type,
            confidence=round(intent.confidence, 2),
            documents=len(document_ids),
            patterns=intent.detected_patterns,
        )

        if not document_ids:
            if intent.requires_document_context:
                raise ContextUnavailableError(
                    "This question needs an uploaded document. Upload an offering memorandum and try again."
                )
            return await self._general_chat(command, intent)

        comparison = intent.requires_comparison and not intent.blocked_by_guard
        if comparison and len(document_ids) < 2:
            raise ComparisonRequiresDocsError()

        if not await self.store.is_available():
            raise StoreUnavailableError()

        statuses = [
            await self.gate.evaluate(document_id, intent.referenced_pages)
            for document_id in document_ids
        ]

        if len(document_ids) == 1 and intent.deal_points and statuses[0].content_hash:
            cached = await self.deal_points.get_cached(statuses[0].content_hash)
            if cached is not None:
                logger.info("chat_deal_points_cache_hit", document_id=document_ids[0])
                return ChatReply(
                    message=format_deal_points(cached),
                    document_ids=document_ids,
                    intent=intent,
                    sources=[Source(document_ids[0], c.page) for c in cached.citations],
                    deal_points_cached=True,
                )

        chunks = await self._retrieve(document_ids, owner_id, query, intent)
        messages = augment_messages(
            chunks,
            self._history(command.messages),
            max_chars=self.config.max_context_chars,
            group_by_document=len(document_ids) > 1,
        )
        answer = await self._complete(messages)
        return ChatReply(
            message=answer,
            document_ids=document_ids,
            intent=intent,
            sources=[Source(c.document_id, c.page, c.chunk_id) for c in chunks],
        )

    async def _retrieve(
        self,
        document_ids: list[str],
        owner_id: str,
        query: str,
        intent: IntentClassification,
    ) -> list[RetrievedChunk]:
        per_document = max(1, self.config.top_k // len(document_ids))
        chunks: list[RetrievedChunk] = []

        for document_id in document_ids:
            found = await self.retriever.retrieve(
                document_id,
                owner_id,
                query,
                k=per_document,
                max_chars=self.config.max_chars_per_chunk,
                referenced_pages=intent.referenced_pages,
            )
            if not found and not self._may_answer_without_context(document_id):
                logger.warning("chat_context_empty", document_id=document_id)
                raise ContextUnavailableError(
                    "Document context is unavailable. Please re-upload the document.",
                    document_id=document_id,
                )
            chunks.extend(found)

        return chunks

    def _may_answer_without_context(self, document_id: str) -> bool:
        return self.config.allow_ephemeral_without_context and document_id.startswith(
            self.ephemeral_prefix
        )

    async def _general_chat(self, command: ChatCommand, intent: IntentClassification) -> ChatReply:
        answer = await self._complete(general_messages(self._history(command.messages)))
        return ChatReply(message=answer, document_ids=[], intent=intent)

    def _history(self, messages: list[dict[str, str]]) -> list[dict[str, str]]:
        if self._history_limiter is not None:
            return self._history_limiter(messages)
        return truncate_messages(messages, get_model_token_limit(self.model), self.model)

    async def _complete(self, messages: list[dict[str, str]]) -> str:
        answer = await self.llm.generate(messages)
        if not answer or not answer.strip():
            logger.warning("chat_empty_completion")
            return FALLBACK_MESSAGE
        return answer.strip()
