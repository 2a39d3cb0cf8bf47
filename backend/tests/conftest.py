"""Common test fixtures."""

import asyncio
from contextlib import contextmanager

import pytest
from PIL import Image

from om_intel.core.background import BackgroundTaskRunner
from om_intel.core.config import (
    AppConfig,
    GateConfig,
    IngestConfig,
    LLMConfig,
    ObjectStorageConfig,
    StoreConfig,
)
from om_intel.core.exceptions import LLMError
from om_intel.core.protocols import OCRResult
from om_intel.core.retry import RetryPolicy
from om_intel.documents.chunker import DocumentChunker
from om_intel.documents.page_extractor import ExtractionOptions, PageTextExtractor
from om_intel.documents.parser import PdfDocumentParser
from om_intel.storage.object_storage import FetchedObject, ObjectNotVisibleError
from om_intel.store.in_memory_store import InMemoryContextStore

PDF_BYTES = b"%PDF-1.7\n" + b"0" * 512


def build_pdf(page_texts: list[str]) -> bytes:
    """A minimal valid PDF with one line of Helvetica text per page."""
    count = len(page_texts)
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [%s] /Count %d >>"
        % (b" ".join(b"%d 0 R" % (4 + 2 * i) for i in range(count)), count),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica /Encoding /WinAnsiEncoding >>",
    ]
    for i, text in enumerate(page_texts):
        content = b"BT /F1 12 Tf 72 720 Td (%s) Tj ET" % text.encode("latin-1")
        objects.append(
            b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
            b"/Resources << /Font << /F1 3 0 R >> >> /Contents %d 0 R >>" % (5 + 2 * i)
        )
        objects.append(b"<< /Length %d >>\nstream\n%s\nendstream" % (len(content), content))

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n%s\nendobj\n" % (number, body)

    xref_at = len(out)
    out += b"xref\n0 %d\n0000000000 65535 f \n" % (len(objects) + 1)
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, xref_at)
    return bytes(out)


def cut_inside_page(data: bytes, fraction: float) -> int:
    """Offset past ``fraction`` of the file that falls inside a page dictionary."""
    return data.index(b"/MediaBox", int(len(data) * fraction))


def word_count(text: str) -> int:
    return len(text.split())


class MockLLM:
    """Mock LLM provider for testing."""

    def __init__(self, responses=None, error: Exception | None = None):
        self.responses = list(responses or [])
        self.error = error
        self.calls: list[dict] = []

    async def generate(self, messages, **kwargs) -> str:
        self.calls.append({"messages": messages, **kwargs})
        if self.error is not None:
            raise self.error
        if kwargs.get("json_mode"):
            return "not json"
        if self.responses:
            return self.responses.pop(0)
        return "This is a mock response."

    @property
    def chat_calls(self) -> list[dict]:
        return [call for call in self.calls if not call.get("json_mode")]


class FailingLLM(MockLLM):
    def __init__(self):
        super().__init__(error=LLMError("upstream down", provider="mock"))


class FakePage:
    """Page handle with a fixed text layer and an optional raster."""

    def __init__(self, page_number: int, text: str = "", tables=None, render_error=None):
        self.page_number = page_number
        self.text = text
        self.tables = tables or []
        self.render_error = render_error
        self.rendered_at: int | None = None
        self.released = False

    def get_text_layer(self) -> str:
        return self.text

    def render(self, dpi: int) -> Image.Image:
        if self.render_error is not None:
            raise self.render_error
        self.rendered_at = dpi
        return Image.new("L", (10, 10), color=255)

    def extract_tables(self):
        return self.tables

    def release(self) -> None:
        self.released = True


class FakeOCREngine:
    def __init__(self, text: str = "NOI $1,250,000", confidence: float = 91.0, error=None):
        self.text = text
        self.confidence = confidence
        self.error = error
        self.calls = 0

    def recognize(self, image, language, config) -> OCRResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return OCRResult(text=self.text, confidence=self.confidence)


class FakePdfDocument:
    def __init__(self, pages: list[FakePage]):
        self.pages = pages
        self.closed = False

    def close(self) -> None:
        self.closed = True

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def page(self, page_number: int) -> FakePage:
        return self.pages[page_number - 1]


class FakeParser(PdfDocumentParser):
    """Parser whose opened document is a list of fake pages."""

    def __init__(self, pages: list[FakePage], extractor: PageTextExtractor | None = None):
        super().__init__(extractor or PageTextExtractor(FakeOCREngine()), page_timeout_seconds=5)
        self.pages = pages
        self.opened: list[bytes] = []

    @contextmanager
    def open(self, data: bytes):
        self.opened.append(data)
        with self.closing(FakePdfDocument(self.pages)) as document:
            yield document


def make_pages(count: int, text: str = "Rent roll and NOI summary for the property on page {n}.") -> list[FakePage]:
    return [FakePage(n, text.format(n=n) * 3) for n in range(1, count + 1)]


class FakeObjectStorage:
    """Object storage that serves fixed bytes.

    ``invisible_for`` first requests answer not-yet-visible. Full fetches wait
    for ``release_full_fetch`` when ``hold_full_fetch`` is set.
    """

    def __init__(self, data: bytes = PDF_BYTES, invisible_for: int = 0, hold_full_fetch: bool = False):
        self.data = data
        self.invisible_for = invisible_for
        self.requests: list[tuple[int, int] | None] = []
        self.release_full_fetch = asyncio.Event()
        if not hold_full_fetch:
            self.release_full_fetch.set()

    async def fetch(self, url: str, byte_range=None) -> FetchedObject:
        self.requests.append(byte_range)
        if len(self.requests) <= self.invisible_for:
            raise ObjectNotVisibleError("Object not visible yet (404)", 404)
        if byte_range is None:
            await self.release_full_fetch.wait()
            return FetchedObject(data=self.data, total_size=len(self.data), partial=False)
        data = self.data[byte_range[0] : byte_range[1] + 1]
        return FetchedObject(data=data, total_size=len(self.data), partial=len(data) < len(self.data))

    async def close(self) -> None:
        pass


class FlakyStore(InMemoryContextStore):
    """In-memory store whose first ``drop_writes`` context writes vanish."""

    def __init__(self, drop_writes: int = 0, weakly_consistent: bool = True, available: bool = True):
        super().__init__()
        self.drop_writes = drop_writes
        self.weakly_consistent = weakly_consistent
        self.available = available
        self.context_writes = 0

    async def set_context(self, document_id, owner_id, context) -> bool:
        self.context_writes += 1
        if self.context_writes <= self.drop_writes:
            return True
        return await super().set_context(document_id, owner_id, context)

    async def is_available(self) -> bool:
        return self.available


@pytest.fixture
def test_config() -> AppConfig:
    """Create test configuration."""
    return AppConfig(
        debug=True,
        log_level="DEBUG",
        log_to_file=False,
        llm=LLMConfig(provider="openai", model="gpt-4o-mini", openai_api_key="test-key"),
        store=StoreConfig(backend="in_memory"),
        object_storage=ObjectStorageConfig(retry_base_delay_seconds=0.0, retry_jitter=0.0),
        ingest=IngestConfig(),
        gate=GateConfig(),
    )


@pytest.fixture
def gate_config() -> GateConfig:
    return GateConfig()


@pytest.fixture
def mock_llm() -> MockLLM:
    """Create mock LLM provider."""
    return MockLLM()


@pytest.fixture
def store() -> InMemoryContextStore:
    return InMemoryContextStore()


@pytest.fixture
def chunker() -> DocumentChunker:
    return DocumentChunker(token_counter=word_count)


@pytest.fixture
def runner() -> BackgroundTaskRunner:
    return BackgroundTaskRunner()


@pytest.fixture
def instant_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=4, base_delay=0.0, jitter=0.0)


@pytest.fixture
def extraction_options() -> ExtractionOptions:
    return ExtractionOptions()

