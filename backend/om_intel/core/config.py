"""Application configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


class LLMConfig(BaseSettings):
    """LLM provider configuration."""

    provider: str = "openai"
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    max_tokens: int = 1500
    base_url: str | None = None
    timeout_seconds: float = 60.0

    # API keys (used based on provider)
    openai_api_key: str | None = None
    anthropic_api_key: str | None = None

    model_config = SettingsConfigDict(env_prefix="LLM_")


class StoreConfig(BaseSettings):
    """Ephemeral context store configuration."""

    backend: str = "in_memory"
    redis_url: str = "redis://localhost:6379/0"
    ttl_seconds: int = 1800
    max_contexts: int = 100
    max_items: int = 10_000
    write_attempts: int = 3
    write_retry_delay_seconds: float = 0.5

    model_config = SettingsConfigDict(env_prefix="STORE_")


class ObjectStorageConfig(BaseSettings):
    """Object storage fetch and visibility retry settings."""

    timeout_seconds: float = 30.0
    fast_range_bytes: int = 5 * 1024 * 1024
    retry_base_delay_seconds: float = 0.5
    retry_max_delay_seconds: float = 16.0
    retry_deadline_seconds: float = 60.0
    retry_max_attempts: int = 12
    retry_jitter: float = 0.25

    model_config = SettingsConfigDict(env_prefix="OBJECT_STORAGE_")


class ExtractionConfig(BaseSettings):
    """Page text extraction and OCR settings."""

    dpi: int = 300
    ocr_char_threshold: int = 400
    digit_ratio_threshold: float = 0.35
    ocr_language: str = "eng"
    page_timeout_seconds: float = 10.0
    ocr_timeout_seconds: float = 8.0
    min_file_size: int = 100
    max_file_size: int = 50 * 1024 * 1024

    model_config = SettingsConfigDict(env_prefix="EXTRACTION_")


class IngestConfig(BaseSettings):
    """Two-phase ingestion settings."""

    fast_max_pages: int = 15
    fast_chunk_size: int = 3000
    background_chunk_size: int = 4000
    background_ocr: bool = True
    request_budget_seconds: float = 60.0
    background_timeout_seconds: float = 300.0
    document_id_prefix: str = "mem-"

    model_config = SettingsConfigDict(env_prefix="INGEST_")


class GateConfig(BaseSettings):
    """Chat context gate settings."""

    pages_per_part: int = 2
    top_k: int = 8
    max_chars_per_chunk: int = 1000
    max_context_chars: int = 8000
    allow_ephemeral_without_context: bool = False
    deal_points_ttl_days: int = 7

    # Requires-context heuristics (regular expressions, case-insensitive)
    page_reference_pattern: str = r"\bpage\s*\d+\b|\bp\.\s*\d+\b"
    comparison_pattern: str = r"(compare|versus|vs\.?|diff(erence)?s?|against)\b"
    document_patterns: list[str] = Field(
        default_factory=lambda: [
            r"\b(deal\s+points|key\s+data\s+points|summary|extract|metrics)\b",
            r"\b(financials|noi|cap\s+rate|comps|rent\s+roll)\b",
            r"\b(lease(s|d)?|lease\s+abstract|zoning|site\s+plan)\b",
            r"\b(risks?|governance|terms?|offering\s+memorandum)\b",
            r"\b(om\b|psa|loi|term\s+sheet|executive\s+summary)\b",
            r"\b(at-a-glance|transaction\s+summary|investment\s+highlights)\b",
            r"\b(analyze|summarize|review|examine|assess)\b",
            r"\b(what\s+(is|are)\s+the|tell\s+me\s+about\s+the)\b",
            r"\b(show\s+me|give\s+me|provide)\b",
            r"\bwhat\s+is\s+on\s+page\b",
            r"\btell\s+me\s+about\s+this\b",
        ]
    )
    pronoun_patterns: list[str] = Field(
        default_factory=lambda: [
            r"\b(this|that|these|those)\s+",
            r"\bin\s+(this|that)\b",
            r"\bof\s+(this|that)\b",
        ]
    )
    guard_patterns: list[str] = Field(
        default_factory=lambda: [
            r"\bfile\s+(taxes?|a\s+complaint|for|with|claim)\b",
            r"\bwhat\s+is\s+a\s+",
            r"\bhow\s+do(es)?\s+",
            r"\bwhy\s+do(es)?\s+",
            r"\b(help|assist|guide|tutorial|instructions|getting\s+started)\b",
            r"\bupload\s+(a\s+)?document\b",
        ]
    )
    deal_points_pattern: str = (
        r"\b(deal\s+points|key\s+(deal\s+)?terms|investment\s+highlights"
        r"|key\s+data\s+points|highlights)\b"
    )

    model_config = SettingsConfigDict(env_prefix="GATE_")


class AppConfig(BaseSettings):
    """Top-level application configuration."""

    app_name: str = "OM Intel"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_to_file: bool = True
    log_dir: str = "logs"
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list = Field(default_factory=lambda: ["*"])
    default_owner_id: str = "anonymous"

    llm: LLMConfig = Field(default_factory=LLMConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    object_storage: ObjectStorageConfig = Field(default_factory=ObjectStorageConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    ingest: IngestConfig = Field(default_factory=IngestConfig)
    gate: GateConfig = Field(default_factory=GateConfig)

    model_config = SettingsConfigDict(env_file=str(_env_file), env_file_encoding="utf-8", extra="ignore")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return AppConfig()
