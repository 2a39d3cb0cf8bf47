"""Deal-point extraction as a strategy chain, cached by content fingerprint."""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from om_intel.core.exceptions import LLMError
from om_intel.core.logging import get_logger
from om_intel.core.protocols import ContextStore, DealPointsStrategy, LLMProvider
from om_intel.documents.models import Chunk, Citation, DealPoints
from om_intel.store.keys import deal_points_key

logger = get_logger(__name__)

EXTRACTOR_VERSION = "2024-01-20-v2"

MAX_BULLETS = 10
MAX_CITATION_CHARS = 200
SCAN_MAX_PAGE = 6
AI_INPUT_MAX_CHARS = 8000

SECTION_HEADERS = (
    "Investment Highlights",
    "Offering Highlights",
    "Executive Summary",
    "Terms Summary",
    "Deal Summary",
    "Key Terms",
    "Transaction Summary",
)
_SECTION_PATTERN = re.compile(
    "|".join(re.escape(header) for header in SECTION_HEADERS), re.IGNORECASE
)

BULLET_PATTERNS = (
    re.compile(r"[•●▪▫◦‣⁃]\s*([^•●▪▫◦‣⁃\n]+)"),
    re.compile(r"^[-−–—]\s*([^-\n]+)", re.MULTILINE),
    re.compile(r"^\d+[.)]\s*([^\d\n]+)", re.MULTILINE),
)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)

EXTRACTION_SYSTEM_PROMPT = (
    "Extract key deal points, investment highlights, and important terms from this "
    "commercial real estate document. Return a JSON object with a \"bullets\" array "
    "(key points) and a \"citations\" array of {\"page\", \"text\"} objects."
)


def strip_code_fences(content: str) -> str:
    """Remove a surrounding Markdown code fence, if any."""
    trimmed = content.strip()
    match = _CODE_FENCE.match(trimmed)
    return match.group(1).strip() if match else trimmed


class _CitationPayload(BaseModel):
    page: int = Field(..., ge=1)
    text: str


class DealPointsPayload(BaseModel):
    """Shape the model is asked to return."""

    bullets: list[str] = Field(default_factory=list)
    citations: list[Any] = Field(default_factory=list)

    def valid_citations(self) -> list[Citation]:
        result = []
        for item in self.citations:
            try:
                citation = _CitationPayload.model_validate(item)
            except ValidationError:
                continue
            result.append(Citation(page=citation.page, text=citation.text[:MAX_CITATION_CHARS]))
        return result


class RegexDealPointsStrategy:
    """Bullets under known OM section headers on the first pages."""

    name = "regex"

    async def extract(self, chunks: list[Chunk], content_hash: str) -> DealPoints | None:
        found: list[tuple[str, int]] = []
        seen: set[str] = set()

        for chunk in chunks:
            if chunk.page > SCAN_MAX_PAGE:
                continue
            header = _SECTION_PATTERN.search(chunk.text)
            if header is None:
                continue

            section = chunk.text[header.end() :]
            for pattern in BULLET_PATTERNS:
                for match in pattern.finditer(section):
                    bullet = " ".join(match.group(1).split())
                    key = bullet.lower()
                    if len(bullet) < 5 or len(bullet) > 300 or key in seen:
                        continue
                    seen.add(key)
                    found.append((bullet, chunk.page))

        if not found:
            return None

        found = found[:MAX_BULLETS]
        return DealPoints(
            bullets=[text for text, _ in found],
            citations=[Citation(page=page, text=text[:MAX_CITATION_CHARS]) for text, page in found],
            content_hash=content_hash,
            extractor_version=EXTRACTOR_VERSION,
            source="regex",
        )


class LLMDealPointsStrategy:
    """One JSON-mode completion over the first pages' text."""

    name = "ai"

    def __init__(self, llm: LLMProvider, max_tokens: int = 350, temperature: float = 0.1):
        self.llm = llm
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def extract(self, chunks: list[Chunk], content_hash: str) -> DealPoints | None:
        leading = [chunk.text for chunk in chunks if chunk.page <= SCAN_MAX_PAGE]
        if not leading:
            return None

        text = "\n\n".join(leading)[:AI_INPUT_MAX_CHARS]
        messages = [
            {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
            {"role": "user", "content": f"Extract the key deal points from this document:\n\n{text}"},
        ]

        try:
            content = await self.llm.generate(
                messages,
                json_mode=True,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except LLMError as e:
            logger.warning("deal_points_llm_failed", error=e.message)
            return None

        try:
            payload = DealPointsPayload.model_validate(json.loads(strip_code_fences(content)))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(
                "deal_points_parse_failed",
                error=str(e),
                preview=content[:200],
            )
            return None

        bullets = [b.strip() for b in payload.bullets if isinstance(b, str) and b.strip()]
        if not bullets:
            return None

        return DealPoints(
            bullets=bullets[:MAX_BULLETS],
            citations=payload.valid_citations()[:MAX_BULLETS],
            content_hash=content_hash,
            extractor_version=EXTRACTOR_VERSION,
            source="ai",
        )


class DealPointsService:
    """Runs the strategy chain and owns the ``dealPoints:{hash}`` cache."""

    def __init__(
        self,
        store: ContextStore,
        strategies: Sequence[DealPointsStrategy],
        cache_ttl_ms: int | None,
    ):
        self.store = store
        self.strategies = list(strategies)
        self.cache_ttl_ms = cache_ttl_ms

    async def extract(self, chunks: list[Chunk], content_hash: str) -> DealPoints | None:
        """First strategy that finds deal points wins."""
        for strategy in self.strategies:
            result = await strategy.extract(chunks, content_hash)
            if result is not None:
                logger.info(
                    "deal_points_found",
                    strategy=strategy.name,
                    bullets=len(result.bullets),
                    content_hash=content_hash,
                )
                return result
        return None

    async def extract_and_cache(
        self,
        document_id: str,
        chunks: list[Chunk],
        content_hash: str | None,
    ) -> DealPoints | None:
        """Best-effort entry point for detached execution; never raises."""
        if not content_hash:
            return None

        try:
            cached = await self.get_cached(content_hash)
            if cached is not None:
                logger.info("deal_points_cache_reused", document_id=document_id)
                return cached

            result = await self.extract(chunks, content_hash)
            if result is None:
                logger.info("deal_points_not_found", document_id=document_id)
                return None

            await self.store.set_item(
                deal_points_key(content_hash), result.to_dict(), ttl_ms=self.cache_ttl_ms
            )
            logger.info(
                "deal_points_cached",
                document_id=document_id,
                source=result.source,
                ttl_ms=self.cache_ttl_ms,
            )
            return result
        except Exception as e:
            logger.error(
                "deal_points_extraction_failed",
                document_id=document_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def get_cached(self, content_hash: str | None) -> DealPoints | None:
        """Cached entry for the current extractor version, or None."""
        if not content_hash:
            return None
        data = await self.store.get_item(deal_points_key(content_hash))
        if not data:
            return None
        entry = DealPoints.from_dict(data)
        if entry.extractor_version != EXTRACTOR_VERSION:
            logger.debug("deal_points_cache_stale", content_hash=content_hash)
            return None
        return entry
