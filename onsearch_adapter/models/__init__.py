# =============================================================================
# On-Search Adapter - Models Package
# =============================================================================
"""Pydantic models for the pipeline and the HTTP surface."""

from .schemas import (
    ErrorResponse,
    HealthResponse,
    IngestionContext,
    IngestionResult,
    IngestResponse,
    PointerEvent,
    SchemaListResponse,
    SchemaRoute,
    build_object_key,
    schema_key,
)

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "IngestionContext",
    "IngestionResult",
    "IngestResponse",
    "PointerEvent",
    "SchemaListResponse",
    "SchemaRoute",
    "build_object_key",
    "schema_key",
]
