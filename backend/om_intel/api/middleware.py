"""FastAPI middleware."""

import time
from typing import override

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from om_intel.api.dependencies import REQUEST_ID_HEADER, ensure_request_id
from om_intel.core.exceptions import AppError
from om_intel.core.logging import log_request

logger = structlog.get_logger()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Binds the request id to the log context and logs each request."""

    # Skip logging for health checks and docs to reduce noise
    SKIP_PATHS = {"/api/v1/health", "/docs", "/redoc", "/openapi.json"}

    @override
    async def dispatch(self, request: Request, call_next) -> Response:
        start_time = time.perf_counter()
        path = request.url.path
        request_id = ensure_request_id(request)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        if path in self.SKIP_PATHS:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response

        logger.info(
            "request_started",
            method=request.method,
            path=path,
            query=str(request.query_params) if request.query_params else None,
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "request_failed",
                method=request.method,
                path=path,
                error=str(e),
                duration_ms=round(duration_ms, 2),
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "request_completed",
            method=request.method,
            path=path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        log_request(
            method=request.method,
            path=path,
            request_id=request_id,
            document_id=request.query_params.get("documentId"),
            duration_ms=duration_ms,
            status_code=response.status_code,
        )

        response.headers["X-Process-Time-Ms"] = f"{duration_ms:.2f}"
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """Turns exceptions into the JSON error envelope."""

    @override
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = ensure_request_id(request)
        try:
            return await call_next(request)
        except AppError as e:
            if e.status_code >= 500:
                logger.error(
                    "app_error",
                    path=request.url.path,
                    code=e.code,
                    error=e.message,
                    request_id=request_id,
                )
            else:
                logger.info(
                    "app_error",
                    path=request.url.path,
                    code=e.code,
                    status_code=e.status_code,
                    request_id=request_id,
                )
            log_request(
                method=request.method,
                path=request.url.path,
                request_id=request_id,
                status_code=e.status_code,
                error_code=e.code,
            )
            return JSONResponse(
                status_code=e.status_code,
                content={**e.to_dict(), "requestId": request_id},
                headers={REQUEST_ID_HEADER: request_id, **e.headers},
            )
        except Exception as e:
            logger.exception("unhandled_exception", path=request.url.path, error=str(e))
            return JSONResponse(
                status_code=500,
                content={
                    "error": {"code": "INTERNAL_ERROR", "message": "Internal server error"},
                    "requestId": request_id,
                },
                headers={REQUEST_ID_HEADER: request_id},
            )
