"""HTTP object storage client with a post-upload visibility retry."""

from __future__ import annotations

import re
from dataclasses import dataclass

import httpx

from om_intel.core.exceptions import FileNotFoundInStorageError
from om_intel.core.logging import get_logger
from om_intel.core.protocols import ObjectStorage
from om_intel.core.retry import RetryExhaustedError, RetryPolicy, retry_async

logger = get_logger(__name__)

_CONTENT_RANGE_TOTAL = re.compile(r"/(\d+)\s*$")

# Storage answers meaning "uploaded but not readable yet"
NOT_YET_VISIBLE_STATUSES = frozenset({404, 409})


class ObjectFetchError(Exception):
    """Object storage request failed."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ObjectNotVisibleError(ObjectFetchError):
    """Object is not visible yet; the upload may still be propagating."""


@dataclass
class FetchedObject:
    """Bytes returned by a fetch.

    ``partial`` is True when only a leading slice was returned; ``total_size``
    is the full object size when the server reported it.
    """

    data: bytes
    total_size: int | None
    partial: bool


class HttpObjectStorage:
    """Fetches uploaded objects by URL, honouring HTTP range requests."""

    def __init__(self, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get async HTTP client (lazy initialization)."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str, byte_range: tuple[int, int] | None = None) -> FetchedObject:
        headers = {}
        if byte_range is not None:
            headers["Range"] = f"bytes={byte_range[0]}-{byte_range[1]}"

        try:
            response = await self.client.get(url, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in NOT_YET_VISIBLE_STATUSES:
                raise ObjectNotVisibleError(f"Object not visible yet ({status})", status) from e
            raise ObjectFetchError(f"Object fetch failed ({status})", status) from e
        except httpx.RequestError as e:
            raise ObjectFetchError(f"Request to object storage failed: {e}") from e

        data = response.content
        if response.status_code == 206:
            match = _CONTENT_RANGE_TOTAL.search(response.headers.get("content-range", ""))
            total = int(match.group(1)) if match else None
            partial = total is None or len(data) < total
            return FetchedObject(data=data, total_size=total, partial=partial)

        return FetchedObject(data=data, total_size=len(data), partial=False)


async def fetch_with_visibility_retry(
    storage: ObjectStorage,
    url: str,
    policy: RetryPolicy,
    object_key: str | None = None,
    byte_range: tuple[int, int] | None = None,
) -> FetchedObject:
    """Fetch an object, retrying only while it is not yet visible.

    Raises:
        FileNotFoundInStorageError: retries exhausted or a non-retryable failure
    """
    try:
        return await retry_async(
            lambda: storage.fetch(url, byte_range=byte_range),
            policy=policy,
            retry_on=(ObjectNotVisibleError,),
            operation_name="object_fetch",
        )
    except RetryExhaustedError as e:
        logger.warning(
            "object_fetch_exhausted",
            object_key=object_key,
            attempts=e.attempts,
            error=str(e.last_error),
        )
        raise FileNotFoundInStorageError(
            "File not found in storage", object_key=object_key, attempts=e.attempts
        ) from e
    except ObjectFetchError as e:
        logger.warning(
            "object_fetch_failed",
            object_key=object_key,
            status_code=e.status_code,
            error=e.message,
        )
        raise FileNotFoundInStorageError(
            "File not found in storage", object_key=object_key, attempts=1
        ) from e
