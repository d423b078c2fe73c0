# =============================================================================
# On-Search Adapter - Pydantic Schemas
# =============================================================================
"""
Domain and response models for the On-Search Adapter.

IngestionContext and PointerEvent are immutable: the context lives for
one request, and a pointer is built once per successful upload.
"""

from datetime import datetime, timezone
from typing import Any, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class IngestionContext(BaseModel):
    """
    Routing metadata read from the payload's ``context`` envelope.

    Attributes:
        domain: Network domain, e.g. "ONDC:RET11"
        action: Callback action, e.g. "on_search"
        transaction_id: Transaction identifier (also the event key)
        message_id: Message identifier
    """

    model_config = ConfigDict(frozen=True)

    domain: str = Field(..., min_length=1)
    action: str = Field(..., min_length=1)
    transaction_id: str = Field(..., min_length=1)
    message_id: str = Field(..., min_length=1)

    @property
    def schema_key(self) -> str:
        return schema_key(self.domain, self.action)


class PointerEvent(BaseModel):
    """
    Message published for every stored payload.

    Carries the bucket and object key of the raw payload instead of the
    payload itself. The wire name of ``storage_kind`` is ``storage``.

    Example:
        {
            "storage": "minio",
            "bucket": "ondc-payloads",
            "object_key": "ondc/ONDC_RET11/on_search/2024-01-15_10-00-00/t1_<uuid>.json",
            "domain": "ONDC:RET11",
            "action": "on_search",
            "transaction_id": "t1"
        }
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    storage_kind: str = Field(..., alias="storage", description="Storage backend label")
    bucket: str = Field(..., description="Bucket holding the payload")
    object_key: str = Field(..., description="Key of the stored payload")
    domain: str = Field(..., description="Payload domain")
    action: str = Field(..., description="Payload action")
    transaction_id: str = Field(..., description="Transaction identifier")

    def to_message_data(self) -> bytes:
        """
        Serialize the pointer for publishing.

        Returns:
            bytes: UTF-8 encoded JSON representation
        """
        return self.model_dump_json(by_alias=True).encode("utf-8")

    @classmethod
    def from_message_data(cls, data: bytes) -> "PointerEvent":
        return cls.model_validate_json(data)


class IngestionResult(BaseModel):
    """Outcome of a pipeline run that reached the done state."""

    context: IngestionContext
    bucket: str
    object_key: str
    message_id: str


class IngestResponse(BaseModel):
    """Response model for an accepted on_search payload."""

    status: str = Field(default="accepted", description="Request status")


class ErrorResponse(BaseModel):
    """Response model for a failed on_search payload (documentation only)."""

    error: str
    code: str
    kind: str
    stage: str
    details: Optional[Any] = None
    request_id: Optional[str] = None


class SchemaRoute(BaseModel):
    """One supported (domain, action) pair."""

    domain: str
    action: str


class SchemaListResponse(BaseModel):
    """Response model for the schema listing endpoint."""

    schemas: List[SchemaRoute]


class HealthResponse(BaseModel):
    """
    Response model for health check endpoint.

    Attributes:
        status: Service health status
        service: Service name
        version: Service version
        timestamp: Current server time
    """

    status: str = Field(default="healthy", description="Health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Current timestamp",
    )


def schema_key(domain: str, action: str) -> str:
    """Registry lookup key for a domain/action pair."""
    return f"{domain}:{action}"


def build_object_key(
    context: IngestionContext,
    now: datetime,
    suffix: Optional[str] = None,
) -> str:
    """
    Build the storage key for a payload.

    Format: ondc/{domain}/{action}/{YYYY-MM-DD_HH-MM-SS}/{transaction_id}_{uuid4}.json
    where colons in the domain are replaced by underscores.

    Args:
        context: Extracted routing context
        now: Local time used for the date folder
        suffix: Unique suffix (a fresh uuid4 when omitted)

    Returns:
        str: Object key
    """
    return "ondc/{domain}/{action}/{stamp}/{txn}_{suffix}.json".format(
        domain=context.domain.replace(":", "_"),
        action=context.action,
        stamp=now.strftime("%Y-%m-%d_%H-%M-%S"),
        txn=context.transaction_id,
        suffix=suffix or str(uuid4()),
    )
