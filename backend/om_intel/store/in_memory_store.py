"""In-process context store for development and single-instance deployments."""

from __future__ import annotations

import asyncio
import json
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from om_intel.core.config import StoreConfig
from om_intel.core.logging import get_logger
from om_intel.documents.models import DocumentContext, DocumentStatus, StatusRecord
from om_intel.store.factory import ContextStoreFactory
from om_intel.store.keys import context_key, status_key

logger = get_logger(__name__)


@ContextStoreFactory.register("in_memory")
class InMemoryContextStore:
    """Dictionary-based store with per-entry TTL.

    Not persistent and not shared between processes, so writers validate
    their writes by reading back. Values are kept serialized; readers always
    get fresh objects. Expired status and item entries are swept on write,
    and the item map is capped at ``max_items``.
    """

    weakly_consistent = True

    def __init__(
        self,
        ttl_seconds: int = 1800,
        max_contexts: int = 100,
        max_items: int = 10_000,
        sweep_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_contexts = max_contexts
        self.max_items = max_items
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._next_sweep = clock() + sweep_interval_seconds
        self._contexts: OrderedDict[str, tuple[str, float]] = OrderedDict()
        self._items: OrderedDict[str, tuple[str, float | None]] = OrderedDict()
        self._status_lock = asyncio.Lock()
        logger.debug("in_memory_store_initialized", ttl_seconds=ttl_seconds, max_items=max_items)

    @classmethod
    def from_config(cls, config: StoreConfig) -> InMemoryContextStore:
        return cls(
            ttl_seconds=config.ttl_seconds,
            max_contexts=config.max_contexts,
            max_items=config.max_items,
        )

    def _expires_at(self, ttl_seconds: float | None) -> float | None:
        return self._clock() + ttl_seconds if ttl_seconds else None

    def _read_item(self, key: str) -> Any | None:
        entry = self._items.get(key)
        if entry is None:
            return None
        payload, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            self._items.pop(key, None)
            return None
        return json.loads(payload)

    def _write_item(self, key: str, payload: str, expires_at: float | None) -> None:
        self._items.pop(key, None)
        self._items[key] = (payload, expires_at)
        self._sweep_expired()

        while len(self._items) > self.max_items:
            evicted, _ = self._items.popitem(last=False)
            logger.info("item_evicted", key=evicted, max_items=self.max_items)

    def _sweep_expired(self) -> None:
        now = self._clock()
        if now < self._next_sweep:
            return
        self._next_sweep = now + self.sweep_interval_seconds

        expired = [key for key, (_, expires_at) in self._items.items() if expires_at is not None and expires_at <= now]
        for key in expired:
            del self._items[key]
        if expired:
            logger.debug("expired_items_swept", count=len(expired), remaining=len(self._items))

    async def set_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error_message: str | None = None,
        *,
        parts: int | None = None,
        pages_indexed: int | None = None,
        content_hash: str | None = None,
        background_processing: bool | None = None,
    ) -> None:
        async with self._status_lock:
            current = await self.get_status(document_id) or StatusRecord(document_id=document_id)
            merged = current.merge(
                status,
                error_message,
                parts=parts,
                pages_indexed=pages_indexed,
                content_hash=content_hash,
                background_processing=background_processing,
            )
            self._write_item(
                status_key(document_id),
                json.dumps(merged.to_dict()),
                self._expires_at(self.ttl_seconds),
            )
        logger.debug(
            "status_set",
            document_id=document_id,
            status=merged.status,
            parts=merged.parts,
            pages_indexed=merged.pages_indexed,
        )

    async def get_status(self, document_id: str) -> StatusRecord | None:
        data = self._read_item(status_key(document_id))
        return StatusRecord.from_dict(data) if data else None

    async def set_context(self, document_id: str, owner_id: str, context: DocumentContext) -> bool:
        try:
            payload = json.dumps(context.to_dict(), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error("context_serialize_failed", document_id=document_id, error=str(e))
            return False

        key = context_key(document_id)
        self._contexts.pop(key, None)
        self._contexts[key] = (payload, self._clock() + self.ttl_seconds)

        while len(self._contexts) > self.max_contexts:
            evicted, _ = self._contexts.popitem(last=False)
            logger.info("context_evicted", key=evicted, max_contexts=self.max_contexts)

        logger.debug(
            "context_set",
            document_id=document_id,
            owner_id=owner_id,
            chunks=len(context.chunks),
        )
        return True

    async def get_context(self, document_id: str, owner_id: str) -> DocumentContext | None:
        key = context_key(document_id)
        entry = self._contexts.get(key)
        if entry is None:
            return None

        payload, expires_at = entry
        if expires_at <= self._clock():
            self._contexts.pop(key, None)
            return None

        context = DocumentContext.from_dict(json.loads(payload))
        if context.owner_id != owner_id:
            logger.warning("context_owner_mismatch", document_id=document_id)
            return None
        return context

    async def set_item(self, key: str, value: Any, ttl_ms: int | None = None) -> None:
        ttl_seconds = ttl_ms / 1000 if ttl_ms else self.ttl_seconds
        self._write_item(key, json.dumps(value, ensure_ascii=False), self._expires_at(ttl_seconds))

    async def get_item(self, key: str) -> Any | None:
        return self._read_item(key)

    async def is_available(self) -> bool:
        return True

    async def close(self) -> None:
        self._contexts.clear()
        self._items.clear()
