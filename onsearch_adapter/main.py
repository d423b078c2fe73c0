# =============================================================================
# On-Search Adapter - Main Application
# =============================================================================
"""
ONDC On-Search Adapter

Accepts heavy ONDC on_search (and search) callback payloads, validates
them against the JSON Schema for their domain and action, stores the raw
payload in S3-compatible object storage, and publishes a pointer event to
Google Cloud Pub/Sub for asynchronous processing.

Key Features:
- Cheap routing: only the payload's context envelope is parsed up front
- Validated: Per-domain JSON Schema validation, compiled at startup
- Durable: Pointer is published only after the payload is stored
- Observable: Structured logging with per-request correlation IDs
"""

import logging

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import RequestIDMiddleware, router
from .config import get_settings
from .errors import ErrorKind, IngestionFailed, Stage
from .services import get_ingestor, get_publisher, get_schema_registry


# =============================================================================
# Logging Configuration
# =============================================================================

def configure_logging() -> None:
    """
    Configure structured logging with structlog.

    Sets up JSON-formatted logs with request-scoped context variables
    merged into every line.
    """
    settings = get_settings()

    logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# =============================================================================
# Error Rendering
# =============================================================================

async def ingestion_failed_handler(request: Request, exc: IngestionFailed) -> JSONResponse:
    """Render a pipeline failure with its status, code and stage."""
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=exc.kind.status_code,
        content=exc.to_response(request_id),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render anything that escaped the pipeline as an internal fault."""
    request_id = getattr(request.state, "request_id", None)
    structlog.get_logger(__name__).exception("unhandled_exception", request_id=request_id)
    failure = IngestionFailed(
        Stage.RECEIVED,
        ErrorKind.UNEXPECTED_INTERNAL_FAULT,
        "internal server error",
    )
    return JSONResponse(
        status_code=failure.kind.status_code,
        content=failure.to_response(request_id),
    )


# =============================================================================
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()

    # Configure logging first
    configure_logging()

    app = FastAPI(
        title="ONDC On-Search Adapter",
        description="""
## Overview

Ingestion gateway for ONDC network callbacks.

## Flow

1. Read the routing `context` (domain, action, transaction_id, message_id)
2. Validate the payload against the schema for its domain and action
3. Store the raw payload in object storage
4. Publish a pointer event (bucket + object key), keyed by transaction_id

Returns **202 Accepted** once the pointer is acknowledged by Pub/Sub.
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(IngestionFailed, ingestion_failed_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Include API routes
    app.include_router(router)

    logger = structlog.get_logger(__name__)
    logger.info(
        "application_startup",
        service=settings.service_name,
        environment=settings.environment,
        bucket=settings.storage_bucket,
        topic=settings.pubsub_topic,
    )

    return app


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()


# =============================================================================
# Startup & Shutdown Events
# =============================================================================

@app.on_event("startup")
async def startup_event() -> None:
    """
    Application startup handler.

    Compiles the schemas and connects the storage and publisher clients,
    so a broken schema or an unreachable bucket fails the process before
    it accepts traffic.
    """
    logger = structlog.get_logger(__name__)
    registry = get_schema_registry()
    get_ingestor()
    logger.info(
        "startup_complete",
        schemas=[f"{domain}:{action}" for domain, action in registry.routes()],
    )


@app.on_event("shutdown")
async def shutdown_event() -> None:
    """
    Application shutdown handler.

    Flushes the Pub/Sub client before the process exits.
    """
    logger = structlog.get_logger(__name__)
    logger.info("shutdown_initiated", message="On-Search Adapter shutting down")
    get_publisher().close()
