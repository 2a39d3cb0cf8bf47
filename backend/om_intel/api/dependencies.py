"""FastAPI dependencies shared by the routes and middleware."""

import uuid
from functools import lru_cache

from fastapi import Request

from om_intel.core.config import AppConfig, get_config

REQUEST_ID_HEADER = "X-Request-ID"
OWNER_HEADER = "X-User-Id"


@lru_cache
def get_cached_config() -> AppConfig:
    """Get cached application config."""
    return get_config()


def ensure_request_id(request: Request) -> str:
    """Request id echoed from the client, or generated once per request."""
    request_id = getattr(request.state, "request_id", None)
    if request_id is None:
        request_id = request.headers.get(REQUEST_ID_HEADER) or f"req-{uuid.uuid4().hex[:12]}"
        request.state.request_id = request_id
    return request_id


def get_request_id(request: Request) -> str:
    return ensure_request_id(request)


def get_owner_id(request: Request) -> str:
    """Owner of the documents touched by this request."""
    owner = request.headers.get(OWNER_HEADER, "").strip()
    return owner or get_cached_config().default_owner_id
