"""Tests for the HTTP object storage client and its visibility retry."""

import httpx
import pytest

from om_intel.core.exceptions import FileNotFoundInStorageError
from om_intel.core.retry import RetryPolicy
from om_intel.storage.object_storage import (
    HttpObjectStorage,
    ObjectFetchError,
    ObjectNotVisibleError,
    fetch_with_visibility_retry,
)
from tests.conftest import PDF_BYTES, FakeObjectStorage

URL = "https://files.example.com/uploads/om.pdf"


def storage_with(handler) -> HttpObjectStorage:
    return HttpObjectStorage(timeout=5, transport=httpx.MockTransport(handler))


class TestHttpObjectStorage:
    """Test cases for HttpObjectStorage."""

    @pytest.mark.asyncio
    async def test_range_request(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["range"] = request.headers.get("range")
            return httpx.Response(
                206, content=PDF_BYTES[:100], headers={"Content-Range": f"bytes 0-99/{len(PDF_BYTES)}"}
            )

        storage = storage_with(handler)
        fetched = await storage.fetch(URL, byte_range=(0, 99))
        await storage.close()

        assert seen["range"] == "bytes=0-99"
        assert fetched.partial is True
        assert fetched.total_size == len(PDF_BYTES)
        assert len(fetched.data) == 100

    @pytest.mark.asyncio
    async def test_full_response_to_range_request(self):
        storage = storage_with(lambda request: httpx.Response(200, content=PDF_BYTES))

        fetched = await storage.fetch(URL, byte_range=(0, 5 * 1024 * 1024))

        assert fetched.partial is False
        assert fetched.data == PDF_BYTES

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [404, 409])
    async def test_not_visible_statuses(self, status):
        storage = storage_with(lambda request: httpx.Response(status))

        with pytest.raises(ObjectNotVisibleError):
            await storage.fetch(URL)

    @pytest.mark.asyncio
    async def test_other_statuses_fail(self):
        storage = storage_with(lambda request: httpx.Response(403))

        with pytest.raises(ObjectFetchError) as exc_info:
            await storage.fetch(URL)
        assert not isinstance(exc_info.value, ObjectNotVisibleError)
        assert exc_info.value.status_code == 403


class TestFetchWithVisibilityRetry:
    """Test cases for the post-upload visibility retry."""

    @pytest.mark.asyncio
    async def test_retries_until_visible(self, instant_retry):
        storage = FakeObjectStorage(invisible_for=2)

        fetched = await fetch_with_visibility_retry(storage, URL, instant_retry, object_key="om.pdf")

        assert fetched.data == PDF_BYTES
        assert len(storage.requests) == 3

    @pytest.mark.asyncio
    async def test_exhaustion_maps_to_file_not_found(self):
        storage = FakeObjectStorage(invisible_for=100)
        policy = RetryPolicy(max_attempts=3, base_delay=0.0, jitter=0.0)

        with pytest.raises(FileNotFoundInStorageError) as exc_info:
            await fetch_with_visibility_retry(storage, URL, policy, object_key="om.pdf")

        assert exc_info.value.code == "FILE_NOT_FOUND"
        assert exc_info.value.status_code == 409
        assert exc_info.value.details["attempts"] == 3

    @pytest.mark.asyncio
    async def test_non_retryable_error_not_retried(self, instant_retry):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        with pytest.raises(FileNotFoundInStorageError):
            await fetch_with_visibility_retry(storage_with(handler), URL, instant_retry)
        assert len(calls) == 1
