"""
On-Search Adapter - Route Handlers

Handles the /on-search callback endpoint plus health and schema listing.
"""

import structlog
from fastapi import APIRouter, Request, status

from .. import __version__
from ..config import get_settings
from ..models import (
    ErrorResponse,
    HealthResponse,
    IngestResponse,
    SchemaListResponse,
    SchemaRoute,
)
from ..services import get_ingestor, get_schema_registry


logger = structlog.get_logger(__name__)
router = APIRouter()

_ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    status.HTTP_502_BAD_GATEWAY: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    status.HTTP_504_GATEWAY_TIMEOUT: {"model": ErrorResponse},
}


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check for load balancers."""
    settings = get_settings()
    return HealthResponse(service=settings.service_name, version=__version__)


@router.get("/schemas", response_model=SchemaListResponse, tags=["Health"])
async def list_schemas() -> SchemaListResponse:
    """List the (domain, action) pairs this adapter accepts."""
    registry = get_schema_registry()
    return SchemaListResponse(
        schemas=[SchemaRoute(domain=domain, action=action) for domain, action in registry.routes()],
    )


@router.post(
    "/on-search",
    response_model=IngestResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=_ERROR_RESPONSES,
    tags=["Ingestion"],
)
async def on_search(request: Request) -> IngestResponse:
    """
    Accept an ONDC callback payload.

    The raw body is validated against the schema for its context's
    domain and action, stored in object storage, and announced with a
    pointer event. Failures are rendered by the IngestionFailed handler.
    """
    payload = await request.body()
    logger.info("on_search_received", body_size=len(payload))

    result = await get_ingestor().ingest(payload)

    logger.info(
        "ingest_successful",
        domain=result.context.domain,
        action=result.context.action,
        transaction_id=result.context.transaction_id,
        object_key=result.object_key,
    )
    return IngestResponse()
