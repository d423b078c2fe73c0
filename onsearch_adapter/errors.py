# =============================================================================
# On-Search Adapter - Error Taxonomy
# =============================================================================
"""
Typed errors for the ingestion pipeline.

Every failure carries an ErrorKind, which fixes the HTTP status and the
stable machine-readable code returned to the caller. Component errors
(schema, storage, publish) are re-raised by the orchestrator as
IngestionFailed, which adds the pipeline stage that was in progress.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Enumeration of pipeline failure kinds."""
    EMPTY_PAYLOAD = "EMPTY_PAYLOAD"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    MALFORMED_PAYLOAD = "MALFORMED_PAYLOAD"
    SCHEMA_VIOLATION = "SCHEMA_VIOLATION"
    UNKNOWN_SCHEMA = "UNKNOWN_SCHEMA"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    STORAGE_WRITE_FAILED = "STORAGE_WRITE_FAILED"
    PUBLISH_TIMEOUT = "PUBLISH_TIMEOUT"
    PUBLISH_FAILED = "PUBLISH_FAILED"
    SERIALIZATION_FAILED = "SERIALIZATION_FAILED"
    UNEXPECTED_INTERNAL_FAULT = "UNEXPECTED_INTERNAL_FAULT"

    @property
    def status_code(self) -> int:
        return _DISPOSITIONS[self][0]

    @property
    def code(self) -> str:
        return _DISPOSITIONS[self][1]

    @property
    def is_client_fault(self) -> bool:
        return self.status_code < 500


# kind -> (HTTP status, stable error code)
_DISPOSITIONS = {
    ErrorKind.EMPTY_PAYLOAD: (400, "ONSEARCH_4001"),
    ErrorKind.MISSING_REQUIRED_FIELD: (400, "ONSEARCH_4002"),
    ErrorKind.MALFORMED_PAYLOAD: (400, "ONSEARCH_4003"),
    ErrorKind.SCHEMA_VIOLATION: (422, "ONSEARCH_4004"),
    ErrorKind.UNKNOWN_SCHEMA: (422, "ONSEARCH_4005"),
    ErrorKind.STORAGE_UNAVAILABLE: (503, "ONSEARCH_5001"),
    ErrorKind.STORAGE_WRITE_FAILED: (502, "ONSEARCH_5002"),
    ErrorKind.PUBLISH_TIMEOUT: (504, "ONSEARCH_5003"),
    ErrorKind.PUBLISH_FAILED: (502, "ONSEARCH_5004"),
    ErrorKind.SERIALIZATION_FAILED: (500, "ONSEARCH_5005"),
    ErrorKind.UNEXPECTED_INTERNAL_FAULT: (500, "ONSEARCH_5000"),
}


class Stage(str, Enum):
    """Pipeline stages, in execution order."""
    RECEIVED = "received"
    CONTEXT_EXTRACTION = "context_extraction"
    VALIDATION = "validation"
    STORAGE = "storage"
    PUBLISH = "publish"
    DONE = "done"


class AdapterError(Exception):
    """
    Base class for typed pipeline errors.

    Attributes:
        kind: Failure kind (drives status and code)
        message: Human-readable summary
        detail: Underlying cause, safe to return to the caller
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        detail: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.detail = detail

    def __str__(self) -> str:
        return f"[{self.kind.code}] {self.message}"


class EnvelopeError(AdapterError):
    """Raised when the routing context cannot be read from a payload."""
    pass


class SchemaValidationError(AdapterError):
    """Raised by the schema registry when a payload is rejected."""
    pass


class SchemaCompileError(Exception):
    """Raised at startup when an embedded schema does not compile."""
    pass


class StorageError(AdapterError):
    """Raised when the object store cannot accept or return an object."""
    pass


class PublishError(AdapterError):
    """Raised when a pointer event is not acknowledged by the broker."""
    pass


class IngestionFailed(AdapterError):
    """
    Terminal pipeline failure.

    Records the stage that was in progress together with the kind and
    cause, so operators can tell validation failures from infrastructure
    failures using the response alone.
    """

    def __init__(
        self,
        stage: Stage,
        kind: ErrorKind,
        message: str,
        detail: Optional[Any] = None,
    ) -> None:
        super().__init__(kind, message, detail)
        self.stage = stage

    @classmethod
    def from_error(cls, stage: Stage, error: AdapterError) -> "IngestionFailed":
        return cls(stage, error.kind, error.message, error.detail)

    def to_response(self, request_id: Optional[str] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": self.message,
            "code": self.kind.code,
            "kind": self.kind.value,
            "stage": self.stage.value,
            "details": self.detail,
        }
        if request_id:
            body["request_id"] = request_id
        return body
