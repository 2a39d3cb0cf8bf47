"""Heuristic intent classification for chat queries."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from om_intel.core.config import GateConfig

_PAGE_NUMBER = re.compile(r"\d+")


@dataclass
class IntentClassification:
    """What a query needs from the document pipeline."""

    type: str  # "document" or "general"
    confidence: float
    requires_comparison: bool = False
    page_reference: bool = False
    referenced_pages: list[int] = field(default_factory=list)
    deal_points: bool = False
    blocked_by_guard: bool = False
    client_override: bool = False
    detected_patterns: list[str] = field(default_factory=list)

    @property
    def requires_document_context(self) -> bool:
        """Queries that must not be answered without a document."""
        if self.client_override:
            return True
        if self.blocked_by_guard:
            return False
        return self.page_reference or self.requires_comparison


class IntentClassifier:
    """Pattern-based classifier; every pattern list comes from configuration."""

    def __init__(self, config: GateConfig):
        flags = re.IGNORECASE
        self.page_pattern = re.compile(config.page_reference_pattern, flags)
        self.comparison_pattern = re.compile(config.comparison_pattern, flags)
        self.deal_points_pattern = re.compile(config.deal_points_pattern, flags)
        self.document_patterns = [re.compile(p, flags) for p in config.document_patterns]
        self.pronoun_patterns = [re.compile(p, flags) for p in config.pronoun_patterns]
        self.guard_patterns = [re.compile(p, flags) for p in config.guard_patterns]

    def referenced_pages(self, query: str) -> list[int]:
        """Page numbers mentioned as ``page 12`` or ``p. 12``."""
        pages = set()
        for match in self.page_pattern.finditer(query):
            number = _PAGE_NUMBER.search(match.group())
            if number:
                pages.add(int(number.group()))
        return sorted(pages)

    def classify(
        self,
        query: str,
        has_document_id: bool = False,
        client_override: bool | None = None,
    ) -> IntentClassification:
        pages = self.referenced_pages(query)
        has_page = bool(pages)
        comparison = bool(self.comparison_pattern.search(query))
        deal_points = bool(self.deal_points_pattern.search(query))

        if client_override:
            return IntentClassification(
                type="document",
                confidence=1.0,
                requires_comparison=comparison,
                page_reference=has_page,
                referenced_pages=pages,
                deal_points=deal_points,
                client_override=True,
                detected_patterns=["client_override"],
            )

        detected: list[str] = []
        has_pronoun = any(p.search(query) for p in self.pronoun_patterns)

        guarded = False
        for pattern in self.guard_patterns:
            if pattern.search(query):
                detected.append(f"guard:{pattern.pattern[:20]}")
                if not has_page and not (has_document_id and has_pronoun):
                    guarded = True

        if guarded:
            return IntentClassification(
                type="general",
                confidence=0.9,
                requires_comparison=comparison,
                deal_points=deal_points,
                blocked_by_guard=True,
                detected_patterns=detected,
            )

        confidence = 0.0
        for pattern in self.document_patterns:
            if pattern.search(query):
                detected.append(f"cre:{pattern.pattern[:30]}")
                confidence += 0.3

        if has_page:
            detected.append("page_reference")
            confidence += 0.4

        if comparison:
            detected.append("comparison")
            confidence += 0.3

        if has_document_id:
            for pattern in self.pronoun_patterns:
                if pattern.search(query):
                    detected.append(f"pronoun:{pattern.pattern[:20]}")
                    confidence += 0.2

        intent_type = "document" if confidence >= 0.3 else "general"
        if intent_type == "document" and not has_document_id and confidence < 0.5:
            return IntentClassification(
                type="general",
                confidence=max(0.3, 1.0 - confidence),
                requires_comparison=comparison,
                page_reference=has_page,
                referenced_pages=pages,
                deal_points=deal_points,
                detected_patterns=detected,
            )

        return IntentClassification(
            type=intent_type,
            confidence=min(1.0, confidence),
            requires_comparison=comparison,
            page_reference=has_page,
            referenced_pages=pages,
            deal_points=deal_points,
            detected_patterns=detected,
        )
