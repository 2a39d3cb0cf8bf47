"""Redis-based context store for multi-instance deployments."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, WatchError
from redis.exceptions import TimeoutError as RedisTimeoutError

from om_intel.core.config import StoreConfig
from om_intel.core.exceptions import StorageError, StoreUnavailableError
from om_intel.core.logging import get_logger
from om_intel.documents.models import DocumentContext, DocumentStatus, StatusRecord
from om_intel.store.factory import ContextStoreFactory
from om_intel.store.keys import context_key, status_key

logger = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (RedisConnectionError, RedisTimeoutError)


@ContextStoreFactory.register("redis")
class RedisContextStore:
    """Redis-backed store with TTL on every key.

    Status updates are merged inside a WATCH/MULTI transaction so concurrent
    fast and background passes cannot lower ``parts`` or ``pages_indexed``.
    """

    weakly_consistent = False

    def __init__(
        self,
        url: str,
        ttl_seconds: int = 1800,
        attempts: int = 3,
        retry_delay_seconds: float = 0.5,
    ):
        self.url = url
        self.ttl_seconds = ttl_seconds
        self.attempts = attempts
        self.retry_delay_seconds = retry_delay_seconds
        self._client: redis.Redis | None = None

    @classmethod
    def from_config(cls, config: StoreConfig) -> RedisContextStore:
        return cls(
            config.redis_url,
            ttl_seconds=config.ttl_seconds,
            attempts=config.write_attempts,
            retry_delay_seconds=config.write_retry_delay_seconds,
        )

    async def _get_client(self) -> redis.Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = redis.from_url(self.url, decode_responses=True)
            logger.info("redis_client_created", url=self.url)
        return self._client

    async def _with_retry(self, operation: str, call: Callable[[redis.Redis], Awaitable[T]]) -> T:
        """Run ``call`` retrying connection-level failures with linear backoff."""
        client = await self._get_client()
        attempt = 1
        while True:
            try:
                return await call(client)
            except TRANSIENT_ERRORS as e:
                if attempt >= self.attempts:
                    raise
                logger.warning(
                    "redis_retry",
                    operation=operation,
                    attempt=attempt,
                    error=str(e),
                )
                await asyncio.sleep(self.retry_delay_seconds * attempt)
                attempt += 1

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
        key = status_key(document_id)

        async def merge(client: redis.Redis) -> StatusRecord:
            async with client.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        current = (
                            StatusRecord.from_dict(json.loads(raw))
                            if raw
                            else StatusRecord(document_id=document_id)
                        )
                        merged = current.merge(
                            status,
                            error_message,
                            parts=parts,
                            pages_indexed=pages_indexed,
                            content_hash=content_hash,
                            background_processing=background_processing,
                        )
                        pipe.multi()
                        pipe.set(key, json.dumps(merged.to_dict()), ex=self.ttl_seconds)
                        await pipe.execute()
                        return merged
                    except WatchError:
                        logger.debug("status_merge_conflict", document_id=document_id)
                        continue

        try:
            merged = await self._with_retry("set_status", merge)
        except RedisError as e:
            logger.error("status_write_failed", document_id=document_id, error=str(e))
            raise StorageError(f"Failed to write status: {e}", document_id=document_id) from e

        logger.debug(
            "status_set",
            document_id=document_id,
            status=merged.status,
            parts=merged.parts,
            pages_indexed=merged.pages_indexed,
        )

    async def get_status(self, document_id: str) -> StatusRecord | None:
        try:
            raw = await self._with_retry("get_status", lambda c: c.get(status_key(document_id)))
        except RedisError as e:
            logger.error("status_read_failed", document_id=document_id, error=str(e))
            raise StoreUnavailableError() from e
        return StatusRecord.from_dict(json.loads(raw)) if raw else None

    async def set_context(self, document_id: str, owner_id: str, context: DocumentContext) -> bool:
        try:
            payload = json.dumps(context.to_dict(), ensure_ascii=False)
            await self._with_retry(
                "set_context",
                lambda c: c.set(context_key(document_id), payload, ex=self.ttl_seconds),
            )
        except (RedisError, TypeError, ValueError) as e:
            logger.error("context_write_failed", document_id=document_id, error=str(e))
            return False

        logger.debug(
            "context_set",
            document_id=document_id,
            owner_id=owner_id,
            chunks=len(context.chunks),
        )
        return True

    async def get_context(self, document_id: str, owner_id: str) -> DocumentContext | None:
        try:
            raw = await self._with_retry("get_context", lambda c: c.get(context_key(document_id)))
        except RedisError as e:
            logger.error("context_read_failed", document_id=document_id, error=str(e))
            return None

        if not raw:
            return None

        context = DocumentContext.from_dict(json.loads(raw))
        if context.owner_id != owner_id:
            logger.warning("context_owner_mismatch", document_id=document_id)
            return None
        return context

    async def set_item(self, key: str, value: Any, ttl_ms: int | None = None) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        if ttl_ms:
            await self._with_retry("set_item", lambda c: c.set(key, payload, px=ttl_ms))
        else:
            await self._with_retry("set_item", lambda c: c.set(key, payload, ex=self.ttl_seconds))

    async def get_item(self, key: str) -> Any | None:
        try:
            raw = await self._with_retry("get_item", lambda c: c.get(key))
        except RedisError as e:
            logger.warning("item_read_failed", key=key, error=str(e))
            return None
        return json.loads(raw) if raw else None

    async def is_available(self) -> bool:
        try:
            client = await self._get_client()
            return bool(await client.ping())
        except RedisError as e:
            logger.warning("redis_unavailable", error=str(e))
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("redis_client_closed")
