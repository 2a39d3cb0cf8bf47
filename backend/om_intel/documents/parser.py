"""PDF parsing that isolates per-page failures."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any

from om_intel.core.logging import get_logger
from om_intel.documents.models import PageText
from om_intel.documents.page_extractor import ExtractionOptions, PageTextExtractor
from om_intel.documents.pdf_backend import PdfDocument, load_pdf

logger = get_logger(__name__)


class PdfDocumentParser:
    """Extracts pages off the event loop, one bounded worker call per page.

    A page that times out or raises yields empty text; the rest of the
    document is still parsed. A worker thread cannot be interrupted, so a
    timed-out page keeps running and the document stays open until it ends.
    """

    def __init__(self, extractor: PageTextExtractor, page_timeout_seconds: float = 10.0):
        self.extractor = extractor
        self.page_timeout_seconds = page_timeout_seconds
        self._in_flight: dict[int, set[asyncio.Future]] = {}

    @contextmanager
    def open(self, data: bytes) -> Iterator[PdfDocument]:
        with self.closing(load_pdf(data)) as document:
            yield document

    @contextmanager
    def closing(self, document: Any) -> Iterator[Any]:
        """Yield an opened document and close it once no page work runs on it."""
        try:
            yield document
        finally:
            self._close_when_idle(document)

    def _close_when_idle(self, document: Any) -> None:
        running = [work for work in self._in_flight.pop(id(document), set()) if not work.done()]
        if not running:
            document.close()
            return

        logger.warning("pdf_close_deferred", pages_in_flight=len(running))
        settled = asyncio.gather(*running, return_exceptions=True)
        settled.add_done_callback(lambda _: document.close())

    async def extract_pages(
        self,
        document: PdfDocument,
        page_numbers: Iterable[int],
        options: ExtractionOptions,
        extract_tables: bool = False,
    ) -> list[PageText]:
        """Extract the given 1-based pages in order."""
        return [
            await self.extract_page(document, number, options, extract_tables)
            for number in page_numbers
        ]

    async def extract_page(
        self,
        document: PdfDocument,
        page_number: int,
        options: ExtractionOptions,
        extract_tables: bool = False,
    ) -> PageText:
        work = asyncio.ensure_future(
            asyncio.to_thread(self._extract_sync, document, page_number, options, extract_tables)
        )
        in_flight = self._in_flight.setdefault(id(document), set())
        in_flight.add(work)
        work.add_done_callback(lambda done: _settle(in_flight, done, page_number))

        try:
            return await asyncio.wait_for(asyncio.shield(work), timeout=self.page_timeout_seconds)
        except TimeoutError:
            logger.warning(
                "page_extraction_timeout",
                page=page_number,
                timeout_seconds=self.page_timeout_seconds,
            )
        except Exception as e:
            logger.warning("page_extraction_failed", page=page_number, error=str(e))
        return PageText(page_number=page_number, text="")

    def _extract_sync(
        self,
        document: PdfDocument,
        page_number: int,
        options: ExtractionOptions,
        extract_tables: bool,
    ) -> PageText:
        page = document.page(page_number)
        try:
            text = self.extractor.extract(page, options)
            tables = page.extract_tables() if extract_tables else []
        finally:
            page.release()
        return PageText(page_number=page_number, text=text, tables=tables)


def _settle(in_flight: set[asyncio.Future], work: asyncio.Future, page_number: int) -> None:
    in_flight.discard(work)
    if not work.cancelled() and work.exception() is not None:
        logger.debug("page_worker_finished_with_error", page=page_number, error=str(work.exception()))
