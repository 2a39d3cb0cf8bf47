"""Readiness arithmetic shared by the chat gate and the status endpoint."""

from __future__ import annotations

import math
from dataclasses import dataclass

from om_intel.documents.models import StatusRecord

PAGES_PER_PART = 2
SECONDS_PER_PART = 2


def compute_required_parts(pages_indexed: int, pages_per_part: int = PAGES_PER_PART) -> int:
    """Parts needed before a processing document may be queried (at least 1)."""
    return max(1, math.ceil(pages_indexed / pages_per_part))


def calculate_retry_after(parts: int, required_parts: int) -> int:
    """Seconds a caller should wait before polling again."""
    return max(1, required_parts - parts)


def page_retry_after(page: int, pages_indexed: int, pages_per_part: int = PAGES_PER_PART) -> int:
    """Retry hint for a query about a page the background pass has not reached."""
    return max(1, math.ceil((page - pages_indexed) / pages_per_part))


def is_query_ready(status: StatusRecord, pages_per_part: int = PAGES_PER_PART) -> bool:
    """Ready documents pass; processing ones pass once past the parts threshold."""
    if status.status == "ready":
        return True
    if status.status == "error":
        return False
    return status.parts >= compute_required_parts(status.pages_indexed, pages_per_part)


@dataclass
class ReadinessSummary:
    status: str
    parts: int
    required_parts: int
    percent_ready: int
    is_ready: bool
    estimated_time_seconds: int | None = None
    retry_after_seconds: int | None = None

    def to_dict(self) -> dict:
        result = {
            "status": self.status,
            "parts": self.parts,
            "requiredParts": self.required_parts,
            "percentReady": self.percent_ready,
            "isReady": self.is_ready,
        }
        if self.estimated_time_seconds is not None:
            result["estimatedTimeSeconds"] = self.estimated_time_seconds
        if self.retry_after_seconds is not None:
            result["retryAfterSeconds"] = self.retry_after_seconds
        return result


def readiness_summary(status: StatusRecord, pages_per_part: int = PAGES_PER_PART) -> ReadinessSummary:
    """Progress metrics for polling clients."""
    required = compute_required_parts(status.pages_indexed, pages_per_part)
    percent = min(100, round(status.parts / required * 100))
    ready = is_query_ready(status, pages_per_part)

    summary = ReadinessSummary(
        status=status.status,
        parts=status.parts,
        required_parts=required,
        percent_ready=100 if status.status == "ready" else percent,
        is_ready=ready,
    )
    if not ready and status.status == "processing":
        remaining = max(0, required - status.parts)
        summary.estimated_time_seconds = max(2, remaining * SECONDS_PER_PART)
        summary.retry_after_seconds = calculate_retry_after(status.parts, required)
    return summary
