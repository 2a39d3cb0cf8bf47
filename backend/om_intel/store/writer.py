"""Validated context writes on top of any context store."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import replace

from om_intel.core.exceptions import StorageError
from om_intel.core.logging import get_logger
from om_intel.core.protocols import ContextStore
from om_intel.documents.models import Chunk, DocumentContext

logger = get_logger(__name__)


class ContextWriter:
    """Writes contexts and confirms them by reading back the chunk count.

    Weakly consistent stores get ``extra_attempts`` more tries with a
    ``retry_delay × attempt`` pause and degrade to a logged warning;
    strongly consistent stores fail the write with ``StorageError``.
    """

    def __init__(
        self,
        store: ContextStore,
        extra_attempts: int = 2,
        retry_delay: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.extra_attempts = extra_attempts
        self.retry_delay = retry_delay
        self._sleep = sleep

    async def write(self, context: DocumentContext) -> bool:
        """Store ``context`` and verify it.

        Returns:
            True when verified; False when a weakly consistent store could
            not confirm the write.

        Raises:
            StorageError: a strongly consistent store failed the write
        """
        document_id = context.document_id
        expected = len(context.chunks)
        attempts = 1 + (self.extra_attempts if self.store.weakly_consistent else 0)

        for attempt in range(1, attempts + 1):
            if await self._write_once(context, expected):
                if attempt > 1:
                    logger.info("context_write_recovered", document_id=document_id, attempt=attempt)
                return True

            if attempt < attempts:
                await self._sleep(self.retry_delay * attempt)

        if self.store.weakly_consistent:
            logger.warning(
                "context_write_unverified",
                document_id=document_id,
                attempts=attempts,
                expected_chunks=expected,
            )
            return False

        raise StorageError("Failed to persist document context", document_id=document_id)

    async def _write_once(self, context: DocumentContext, expected: int) -> bool:
        document_id = context.document_id
        if not await self.store.set_context(document_id, context.owner_id, context):
            logger.warning("context_write_rejected", document_id=document_id)
            return False

        stored = await self.store.get_context(document_id, context.owner_id)
        actual = len(stored.chunks) if stored else None
        if actual != expected:
            logger.warning(
                "context_write_mismatch",
                document_id=document_id,
                expected_chunks=expected,
                actual_chunks=actual,
            )
            return False
        return True

    async def append(
        self,
        document_id: str,
        owner_id: str,
        new_chunks: Sequence[Chunk],
        pages_indexed: int,
    ) -> DocumentContext | None:
        """Read-modify-append: continue the stored chunk sequence.

        New chunks are re-indexed to follow the stored ones. Returns the
        written context, or None when the stored context is gone.
        """
        current = await self.store.get_context(document_id, owner_id)
        if current is None:
            logger.warning("context_append_missing", document_id=document_id)
            return None

        offset = len(current.chunks)
        appended = [chunk.reindexed(offset + i) for i, chunk in enumerate(new_chunks)]
        updated = replace(
            current,
            chunks=current.chunks + appended,
            meta=replace(current.meta, pages_indexed=max(current.meta.pages_indexed, pages_indexed)),
        )
        await self.write(updated)
        return updated
