"""API routes for document ingestion and chat."""

import time

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Query

from om_intel.api.dependencies import get_owner_id, get_request_id
from om_intel.api.schemas import (
    ChatRequest,
    ChatResponse,
    ContextStatusResponse,
    HealthResponse,
    IngestRequest,
    IngestResponse,
    IntentInfo,
    ReadinessInfo,
    SourceInfo,
)
from om_intel.chat.readiness import readiness_summary
from om_intel.chat.service import ChatCommand, ChatService
from om_intel.core.config import AppConfig
from om_intel.core.di_container import DIContainer
from om_intel.core.exceptions import AppError, InvalidRequestError
from om_intel.core.logging import get_logger, log_request
from om_intel.core.protocols import ContextStore
from om_intel.core.validators import validate_document_id
from om_intel.ingestion.orchestrator import IngestionOrchestrator

logger = get_logger(__name__)

router = APIRouter()


@router.post("/documents/ingest", response_model=IngestResponse, response_model_by_alias=True)
@inject
async def ingest_document(
    request: IngestRequest,
    owner_id: str = Depends(get_owner_id),  # noqa: B008
    request_id: str = Depends(get_request_id),  # noqa: B008
    orchestrator: IngestionOrchestrator = Depends(Provide[DIContainer.orchestrator]),  # noqa: B008
) -> IngestResponse:
    """Index the first pages of an uploaded PDF and schedule the rest."""
    result = await orchestrator.ingest(
        object_key=request.object_key,
        object_url=request.object_url,
        owner_id=owner_id,
        request_id=request_id,
    )
    return IngestResponse(
        document_id=result.document_id,
        title=result.title,
        pages_indexed=result.pages_indexed,
        status=result.status,
        background_processing=result.background_processing,
        content_hash=result.content_hash,
        chunk_count=result.chunk_count,
        processing_time_ms=result.processing_time_ms,
        request_id=request_id,
    )


@router.post("/chat", response_model=ChatResponse, response_model_by_alias=True)
@inject
async def chat(
    request: ChatRequest,
    owner_id: str = Depends(get_owner_id),  # noqa: B008
    request_id: str = Depends(get_request_id),  # noqa: B008
    chat_service: ChatService = Depends(Provide[DIContainer.chat_service]),  # noqa: B008
) -> ChatResponse:
    """Answer a chat turn, grounded in the referenced documents."""
    start_time = time.perf_counter()
    command = ChatCommand(
        messages=[message.model_dump() for message in request.messages],
        document_id=request.document_id,
        compare_document_id=request.compare_document_id,
        document_ids=request.document_ids,
        requires_context=request.requires_context,
    )

    reply = await chat_service.chat(command, owner_id=owner_id, request_id=request_id)

    log_request(
        method="POST",
        path="/api/v1/chat",
        request_id=request_id,
        document_id=",".join(reply.document_ids) or None,
        user_message=command.latest_user_message(),
        duration_ms=(time.perf_counter() - start_time) * 1000,
        status_code=200,
    )
    return ChatResponse(
        message=reply.message,
        document_ids=reply.document_ids,
        intent=IntentInfo(
            type=reply.intent.type,
            confidence=reply.intent.confidence,
            requires_comparison=reply.intent.requires_comparison,
            page_reference=reply.intent.page_reference,
        ),
        sources=[
            SourceInfo(document_id=s.document_id, page=s.page, chunk_id=s.chunk_id)
            for s in reply.sources
        ],
        deal_points_cached=reply.deal_points_cached,
        request_id=request_id,
    )


@router.get("/context-status", response_model=ContextStatusResponse, response_model_by_alias=True)
@inject
async def context_status(
    document_id: str | None = Query(default=None, alias="documentId"),  # noqa: B008
    request_id: str = Depends(get_request_id),  # noqa: B008
    store: ContextStore = Depends(Provide[DIContainer.context_store]),  # noqa: B008
    config: AppConfig = Depends(Provide[DIContainer.config]),  # noqa: B008
) -> ContextStatusResponse:
    """Progress of a document's ingestion."""
    is_valid, error = validate_document_id(document_id)
    if not is_valid:
        raise InvalidRequestError(error or "Invalid documentId")

    status = await store.get_status(document_id)
    if status is None:
        raise AppError(
            f"Document context not found: {document_id}",
            code="CONTEXT_NOT_FOUND",
            status_code=404,
            details={"documentId": document_id},
        )

    summary = readiness_summary(status, config.gate.pages_per_part)
    return ContextStatusResponse(
        document_id=status.document_id,
        status=status.status,
        parts=status.parts,
        pages_indexed=status.pages_indexed,
        content_hash=status.content_hash,
        error_message=status.error_message,
        background_processing=status.background_processing,
        updated_at=status.updated_at,
        readiness=ReadinessInfo(
            parts=summary.parts,
            required_parts=summary.required_parts,
            percent_ready=summary.percent_ready,
            is_ready=summary.is_ready,
            estimated_time_seconds=summary.estimated_time_seconds,
            retry_after_seconds=summary.retry_after_seconds,
        ),
        request_id=request_id,
    )


@router.get("/health", response_model=HealthResponse, response_model_by_alias=True)
@inject
async def health(
    config: AppConfig = Depends(Provide[DIContainer.config]),  # noqa: B008
    store: ContextStore = Depends(Provide[DIContainer.context_store]),  # noqa: B008
) -> HealthResponse:
    """Check service health and configuration."""
    store_available = await store.is_available()
    return HealthResponse(
        status="ok" if store_available else "degraded",
        llm_provider=config.llm.provider,
        llm_model=config.llm.model,
        store_backend=config.store.backend,
        store_available=store_available,
    )
