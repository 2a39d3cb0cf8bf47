"""Readiness gate applied to every document a chat turn references."""

from __future__ import annotations

from collections.abc import Sequence

from om_intel.chat.readiness import compute_required_parts, calculate_retry_after, page_retry_after
from om_intel.core.exceptions import (
    DocumentFailedError,
    DocumentNotFoundError,
    DocumentNotReadyError,
)
from om_intel.core.logging import get_logger
from om_intel.core.protocols import ContextStore
from om_intel.documents.models import StatusRecord

logger = get_logger(__name__)


class ChatContextGate:
    """Decides whether a document can answer a query right now."""

    def __init__(self, store: ContextStore, pages_per_part: int = 2):
        self.store = store
        self.pages_per_part = pages_per_part

    async def evaluate(
        self,
        document_id: str,
        referenced_pages: Sequence[int] = (),
    ) -> StatusRecord:
        """Return the status record of a queryable document.

        Raises:
            DocumentNotFoundError: no status record exists
            DocumentFailedError: processing ended in error
            DocumentNotReadyError: not enough parts indexed yet, or a
                referenced page is still being indexed in the background
        """
        status = await self.store.get_status(document_id)
        if status is None:
            logger.info("gate_document_not_found", document_id=document_id)
            raise DocumentNotFoundError(document_id)

        if status.status == "error":
            logger.info("gate_document_failed", document_id=document_id)
            raise DocumentFailedError(document_id, status.error_message)

        required = compute_required_parts(status.pages_indexed, self.pages_per_part)
        if status.status == "processing" and status.parts < required:
            retry_after = calculate_retry_after(status.parts, required)
            logger.info(
                "gate_document_processing",
                document_id=document_id,
                parts=status.parts,
                required_parts=required,
                retry_after=retry_after,
            )
            raise DocumentNotReadyError(
                document_id, retry_after, status.parts, required, status.pages_indexed
            )

        pending = [page for page in referenced_pages if page > status.pages_indexed]
        if pending and status.background_processing:
            retry_after = page_retry_after(max(pending), status.pages_indexed, self.pages_per_part)
            logger.info(
                "gate_page_not_indexed",
                document_id=document_id,
                page=max(pending),
                pages_indexed=status.pages_indexed,
                retry_after=retry_after,
            )
            raise DocumentNotReadyError(
                document_id, retry_after, status.parts, required, status.pages_indexed
            )

        return status
