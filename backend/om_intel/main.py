"""FastAPI application entry point."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from om_intel.api.dependencies import REQUEST_ID_HEADER, ensure_request_id, get_cached_config
from om_intel.api.middleware import ExceptionHandlerMiddleware, RequestLoggingMiddleware
from om_intel.api.routes import router as api_router
from om_intel.core.di_container import container as di_container
from om_intel.core.logging import setup_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    config = di_container.config()

    # Setup logging
    setup_logging(
        log_level=config.log_level,
        json_format=not config.debug,
        log_to_file=config.log_to_file,
        log_dir=config.log_dir,
    )

    # Wire DI container
    di_container.wire(modules=["om_intel.api.routes"])

    logger.info(
        "application_starting",
        app_name=config.app_name,
        environment=config.environment,
        llm_provider=config.llm.provider,
        llm_model=config.llm.model,
        store_backend=config.store.backend,
    )

    yield

    logger.info("application_shutting_down")

    # Stop detached ingestion work before closing what it writes to
    await di_container.background_runner().shutdown()

    di_container.unwire()

    await di_container.object_storage().close()
    await di_container.context_store().close()


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies use the shared error envelope."""
    request_id = ensure_request_id(request)
    details = [
        {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "error": {
                "code": "INVALID_REQUEST",
                "message": "Request validation failed",
                "details": {"errors": details},
            },
            "requestId": request_id,
        },
        headers={REQUEST_ID_HEADER: request_id},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    config = get_cached_config()

    app = FastAPI(
        title=config.app_name,
        description="Offering memorandum ingestion and document-grounded chat",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (last added runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Retry-After", REQUEST_ID_HEADER],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(ExceptionHandlerMiddleware)

    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Include routers
    app.include_router(api_router, prefix="/api/v1")

    # Root endpoint
    @app.get("/")
    async def root():
        return {
            "name": config.app_name,
            "version": "0.1.0",
            "docs": "/docs",
            "health": "/api/v1/health",
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    config = get_cached_config()
    uvicorn.run(
        "om_intel.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
    )
