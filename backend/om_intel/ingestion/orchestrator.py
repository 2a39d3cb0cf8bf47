"""Two-phase PDF ingestion: a bounded fast pass and a detached background pass."""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass

from om_intel.core.background import BackgroundTaskRunner
from om_intel.core.exceptions import (
    AppError,
    IngestTimeoutError,
    InvalidPDFError,
    NoContentError,
    StoreUnavailableError,
)
from om_intel.core.logging import get_logger
from om_intel.core.protocols import ContextStore, ObjectStorage
from om_intel.core.retry import RetryPolicy
from om_intel.core.validators import quick_validate_pdf, title_from_object_key
from om_intel.documents.chunker import DocumentChunker, compute_content_hash
from om_intel.documents.models import DocumentContext, DocumentMeta, IngestResult, PageText
from om_intel.documents.page_extractor import ExtractionOptions
from om_intel.documents.parser import PdfDocumentParser
from om_intel.ingestion.deal_points import DealPointsService
from om_intel.storage.object_storage import fetch_with_visibility_retry
from om_intel.store.writer import ContextWriter

logger = get_logger(__name__)


@dataclass(frozen=True)
class IngestSettings:
    """Tunables for both ingestion phases."""

    fast_max_pages: int = 15
    fast_chunk_size: int = 3000
    fast_range_bytes: int = 5 * 1024 * 1024
    background_chunk_size: int = 4000
    background_ocr: bool = True
    pages_per_part: int = 2
    request_budget_seconds: float = 60.0
    background_timeout_seconds: float = 300.0
    document_id_prefix: str = "mem-"
    min_file_size: int = 100
    max_file_size: int = 50 * 1024 * 1024


class IngestionOrchestrator:
    """Drives ingestion of one uploaded PDF.

    The fast pass indexes the first pages and answers the HTTP request.
    Deal-point extraction and the background pass are submitted to the
    background runner; their outcome is visible only through the store.
    """

    def __init__(
        self,
        store: ContextStore,
        writer: ContextWriter,
        object_storage: ObjectStorage,
        parser: PdfDocumentParser,
        chunker: DocumentChunker,
        deal_points: DealPointsService,
        runner: BackgroundTaskRunner,
        extraction_options: ExtractionOptions,
        fetch_policy: RetryPolicy,
        settings: IngestSettings,
    ):
        self.store = store
        self.writer = writer
        self.object_storage = object_storage
        self.parser = parser
        self.chunker = chunker
        self.deal_points = deal_points
        self.runner = runner
        self.extraction_options = extraction_options
        self.fetch_policy = fetch_policy
        self.settings = settings

    def new_document_id(self) -> str:
        return f"{self.settings.document_id_prefix}{uuid.uuid4().hex}"

    async def ingest(
        self,
        object_key: str,
        object_url: str,
        owner_id: str,
        request_id: str | None = None,
    ) -> IngestResult:
        """Run the fast pass within the request budget.

        Raises:
            IngestTimeoutError: the budget elapsed before a result
            AppError: typed failures from fetch, validation or storage
        """
        if not await self.store.is_available():
            logger.error("ingest_store_unavailable", object_key=object_key)
            raise StoreUnavailableError()

        try:
            return await asyncio.wait_for(
                self._fast_pass(object_key, object_url, owner_id, request_id),
                timeout=self.settings.request_budget_seconds,
            )
        except TimeoutError as e:
            logger.error(
                "ingest_timeout",
                object_key=object_key,
                budget_seconds=self.settings.request_budget_seconds,
            )
            raise IngestTimeoutError(self.settings.request_budget_seconds) from e

    async def _fast_pass(
        self,
        object_key: str,
        object_url: str,
        owner_id: str,
        request_id: str | None,
    ) -> IngestResult:
        started = time.perf_counter()

        fetched = await fetch_with_visibility_retry(
            self.object_storage,
            object_url,
            self.fetch_policy,
            object_key=object_key,
            byte_range=(0, self.settings.fast_range_bytes),
        )
        logger.info(
            "ingest_fetched",
            object_key=object_key,
            bytes=len(fetched.data),
            total_size=fetched.total_size,
            partial=fetched.partial,
        )

        is_valid, error = quick_validate_pdf(
            fetched.data,
            total_size=fetched.total_size,
            min_size=self.settings.min_file_size,
            max_size=self.settings.max_file_size,
        )
        if not is_valid:
            raise InvalidPDFError(error or "Invalid PDF file")

        document_id = self.new_document_id()
        await self.store.set_status(document_id, "processing")
        logger.info(
            "ingest_started",
            document_id=document_id,
            owner_id=owner_id,
            request_id=request_id,
        )

        try:
            return await self._index_first_pages(
                document_id, object_key, object_url, owner_id, fetched.data, fetched.partial, started
            )
        except AppError as e:
            await self._mark_failed(document_id, e.message)
            raise
        except asyncio.CancelledError:
            await self._mark_failed(document_id, "Ingestion timed out")
            raise
        except Exception as e:
            await self._mark_failed(document_id, str(e))
            raise

    async def _index_first_pages(
        self,
        document_id: str,
        object_key: str,
        object_url: str,
        owner_id: str,
        data: bytes,
        truncated: bool,
        started: float,
    ) -> IngestResult:
        options = ExtractionOptions(
            dpi=self.extraction_options.dpi,
            ocr_char_threshold=self.extraction_options.ocr_char_threshold,
            digit_ratio_threshold=self.extraction_options.digit_ratio_threshold,
            perform_ocr=False,
            language=self.extraction_options.language,
        )

        try:
            page_count, pages = await self._read_first_pages(data, options)
        except InvalidPDFError as e:
            if not truncated:
                raise
            # The cross-reference table sits at the end of the file
            logger.info(
                "ingest_range_unparseable",
                document_id=document_id,
                object_key=object_key,
                bytes=len(data),
                error=e.message,
            )
            fetched = await fetch_with_visibility_retry(
                self.object_storage, object_url, self.fetch_policy, object_key=object_key
            )
            data, truncated = fetched.data, fetched.partial
            page_count, pages = await self._read_first_pages(data, options)

        last_page = min(page_count, self.settings.fast_max_pages)
        chunks = self.chunker.chunk(pages, self.settings.fast_chunk_size, "fast")
        if not chunks:
            raise NoContentError()

        content_hash = compute_content_hash(data)
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        context = DocumentContext(
            document_id=document_id,
            owner_id=owner_id,
            chunks=chunks,
            meta=DocumentMeta(
                pages_indexed=last_page,
                processing_time_ms=elapsed_ms,
                content_hash=content_hash,
                original_filename=title_from_object_key(object_key),
            ),
        )
        await self.writer.write(context)

        needs_background = truncated or page_count > last_page
        await self.store.set_status(
            document_id,
            "ready",
            parts=1,
            pages_indexed=last_page,
            content_hash=content_hash,
            background_processing=needs_background,
        )

        self.runner.submit(
            self.deal_points.extract_and_cache(document_id, chunks, content_hash),
            name=f"deal-points:{document_id}",
        )
        if needs_background:
            self.runner.submit(
                self.run_background_pass(document_id, object_key, object_url, owner_id, last_page),
                name=f"background-pass:{document_id}",
            )

        logger.info(
            "ingest_completed",
            document_id=document_id,
            pages_indexed=last_page,
            page_count=page_count,
            chunks=len(chunks),
            background_processing=needs_background,
            processing_time_ms=elapsed_ms,
        )
        return IngestResult(
            document_id=document_id,
            title=context.meta.original_filename,
            pages_indexed=last_page,
            status="ready",
            background_processing=needs_background,
            content_hash=content_hash,
            chunk_count=len(chunks),
            processing_time_ms=elapsed_ms,
        )

    async def _read_first_pages(self, data: bytes, options: ExtractionOptions) -> tuple[int, list[PageText]]:
        with self.parser.open(data) as pdf:
            page_count = pdf.page_count
            last_page = min(page_count, self.settings.fast_max_pages)
            pages = await self.parser.extract_pages(pdf, range(1, last_page + 1), options)
        return page_count, pages

    async def _mark_failed(self, document_id: str, message: str) -> None:
        try:
            await self.store.set_status(document_id, "error", message)
        except AppError as e:
            logger.error("status_error_write_failed", document_id=document_id, error=e.message)
        logger.warning("ingest_failed", document_id=document_id, error=message)

    async def run_background_pass(
        self,
        document_id: str,
        object_key: str,
        object_url: str,
        owner_id: str,
        pages_done: int,
    ) -> None:
        """Index the remaining pages; failures are logged, never raised."""
        started = time.perf_counter()
        try:
            await asyncio.wait_for(
                self._index_remaining_pages(document_id, object_key, object_url, owner_id, pages_done),
                timeout=self.settings.background_timeout_seconds,
            )
            logger.info(
                "background_pass_completed",
                document_id=document_id,
                duration_ms=int((time.perf_counter() - started) * 1000),
            )
        except Exception as e:
            logger.error(
                "background_pass_failed",
                document_id=document_id,
                error=str(e),
                error_type=type(e).__name__,
            )
        finally:
            await self._finish_background(document_id)

    async def _finish_background(self, document_id: str) -> None:
        try:
            await self.store.set_status(document_id, "ready", background_processing=False)
        except AppError as e:
            logger.error("background_status_write_failed", document_id=document_id, error=e.message)

    async def _index_remaining_pages(
        self,
        document_id: str,
        object_key: str,
        object_url: str,
        owner_id: str,
        pages_done: int,
    ) -> None:
        fetched = await fetch_with_visibility_retry(
            self.object_storage, object_url, self.fetch_policy, object_key=object_key
        )
        options = ExtractionOptions(
            dpi=self.extraction_options.dpi,
            ocr_char_threshold=self.extraction_options.ocr_char_threshold,
            digit_ratio_threshold=self.extraction_options.digit_ratio_threshold,
            perform_ocr=self.settings.background_ocr,
            language=self.extraction_options.language,
        )
        batch_size = max(1, self.settings.pages_per_part)

        with self.parser.open(fetched.data) as pdf:
            page_count = pdf.page_count
            logger.info(
                "background_pass_started",
                document_id=document_id,
                first_page=pages_done + 1,
                page_count=page_count,
            )

            for first in range(pages_done + 1, page_count + 1, batch_size):
                last = min(first + batch_size - 1, page_count)
                pages = await self.parser.extract_pages(
                    pdf, range(first, last + 1), options, extract_tables=True
                )
                chunks = self.chunker.chunk(pages, self.settings.background_chunk_size, "background")

                if chunks:
                    updated = await self.writer.append(document_id, owner_id, chunks, last)
                    if updated is None:
                        logger.warning("background_pass_context_gone", document_id=document_id)
                        return

                status = await self.store.get_status(document_id)
                parts = (status.parts if status else 0) + 1
                await self.store.set_status(document_id, "ready", parts=parts, pages_indexed=last)
                logger.debug(
                    "background_batch_indexed",
                    document_id=document_id,
                    pages=f"{first}-{last}",
                    chunks=len(chunks),
                    parts=parts,
                )
