"""Request and response schemas for the API."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Request Models ---


class IngestRequest(CamelModel):
    """Ingest an uploaded PDF from object storage."""

    object_key: str = Field(..., min_length=1, max_length=1024, description="Storage object key")
    object_url: str = Field(..., min_length=1, description="URL the object can be fetched from")


class ChatMessage(CamelModel):
    role: Literal["system", "user", "assistant"]
    content: str = Field(..., max_length=20000)


class ChatRequest(CamelModel):
    """Chat request schema."""

    messages: list[ChatMessage] = Field(..., min_length=1, description="Conversation so far")
    document_id: str | None = Field(default=None, description="Primary document")
    compare_document_id: str | None = Field(default=None, description="Second document to compare")
    document_ids: list[str] = Field(default_factory=list, description="Additional documents")
    requires_context: bool | None = Field(
        default=None, description="Client override: the answer must be grounded"
    )


# --- Response Models ---


class IngestResponse(CamelModel):
    """Result of the synchronous fast pass."""

    document_id: str
    title: str
    pages_indexed: int
    status: str
    background_processing: bool
    content_hash: str | None = None
    chunk_count: int
    processing_time_ms: int
    request_id: str


class SourceInfo(CamelModel):
    document_id: str
    page: int
    chunk_id: str | None = None


class IntentInfo(CamelModel):
    type: str
    confidence: float
    requires_comparison: bool
    page_reference: bool


class ChatResponse(CamelModel):
    """Chat response schema."""

    message: str = Field(..., description="Assistant response")
    document_ids: list[str] = Field(default_factory=list)
    intent: IntentInfo
    sources: list[SourceInfo] = Field(default_factory=list)
    deal_points_cached: bool = False
    request_id: str


class ReadinessInfo(CamelModel):
    parts: int
    required_parts: int
    percent_ready: int
    is_ready: bool
    estimated_time_seconds: int | None = None
    retry_after_seconds: int | None = None


class ContextStatusResponse(CamelModel):
    """Status record plus readiness metrics."""

    document_id: str
    status: str
    parts: int
    pages_indexed: int
    content_hash: str | None = None
    error_message: str | None = None
    background_processing: bool
    updated_at: int
    readiness: ReadinessInfo
    request_id: str


class HealthResponse(CamelModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    llm_provider: str = Field(..., description="Active LLM provider")
    llm_model: str = Field(..., description="Active LLM model")
    store_backend: str = Field(..., description="Active context store backend")
    store_available: bool = Field(..., description="Whether the context store responds")
