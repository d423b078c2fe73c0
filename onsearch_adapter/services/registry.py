# =============================================================================
# On-Search Adapter - Schema Registry
# =============================================================================
"""
JSON Schema registry keyed by (domain, action).

Schemas are compiled once at startup into an immutable mapping that is
shared by every request. The set of supported pairs is closed: adding a
pair means shipping a new schema resource and listing it in
EMBEDDED_SCHEMAS.
"""

import json
from functools import lru_cache
from importlib import resources
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Tuple, Union

import structlog
from jsonschema import exceptions as jsonschema_exceptions
from jsonschema.validators import validator_for

from ..errors import ErrorKind, SchemaCompileError, SchemaValidationError
from ..models import schema_key


logger = structlog.get_logger(__name__)

SchemaSource = Union[str, bytes, Dict[str, Any]]

# (domain, action) -> resource file under onsearch_adapter/schemas
EMBEDDED_SCHEMAS: Dict[Tuple[str, str], str] = {
    ("ONDC:RET11", "on_search"): "ret11_on_search.schema.json",
    ("ONDC:RET18", "search"): "ret18_search.schema.json",
}


class SchemaRegistry:
    """
    Read-only lookup of compiled validators.

    Attributes:
        _validators: Immutable mapping of "domain:action" to validator
        _routes: Supported (domain, action) pairs, in registration order
    """

    def __init__(self, validators: Mapping[str, Any], routes: List[Tuple[str, str]]) -> None:
        self._validators = MappingProxyType(dict(validators))
        self._routes = tuple(routes)

    @classmethod
    def compile(cls, sources: Mapping[Tuple[str, str], SchemaSource]) -> "SchemaRegistry":
        """
        Compile raw schema sources.

        Args:
            sources: Schema documents (JSON text or parsed dict) keyed by
                (domain, action)

        Returns:
            SchemaRegistry: Registry holding one validator per pair

        Raises:
            SchemaCompileError: If any source is not valid JSON or not a
                valid JSON Schema
        """
        validators: Dict[str, Any] = {}
        for (domain, action), source in sources.items():
            key = schema_key(domain, action)
            try:
                schema = json.loads(source) if isinstance(source, (str, bytes)) else source
                if not isinstance(schema, dict):
                    raise ValueError("schema document must be a JSON object")
                validator_cls = validator_for(schema)
                validator_cls.check_schema(schema)
            except (ValueError, jsonschema_exceptions.SchemaError) as e:
                raise SchemaCompileError(f"failed to compile schema for {key}: {e}") from e

            validators[key] = validator_cls(
                schema,
                format_checker=validator_cls.FORMAT_CHECKER,
            )
            logger.info("schema_compiled", schema_key=key, draft=validator_cls.__name__)

        return cls(validators, list(sources.keys()))

    @classmethod
    def from_package(cls) -> "SchemaRegistry":
        """Compile the schema resources shipped with this package."""
        schema_dir = resources.files("onsearch_adapter").joinpath("schemas")
        sources = {
            route: schema_dir.joinpath(filename).read_text(encoding="utf-8")
            for route, filename in EMBEDDED_SCHEMAS.items()
        }
        return cls.compile(sources)

    def routes(self) -> Tuple[Tuple[str, str], ...]:
        return self._routes

    def validate(self, domain: str, action: str, payload: bytes) -> None:
        """
        Validate a payload against the schema for its domain and action.

        Args:
            domain: Payload domain
            action: Payload action
            payload: Raw payload bytes

        Raises:
            SchemaValidationError: UNKNOWN_SCHEMA, MALFORMED_PAYLOAD or
                SCHEMA_VIOLATION
        """
        key = schema_key(domain, action)
        validator = self._validators.get(key)
        if validator is None:
            raise SchemaValidationError(
                ErrorKind.UNKNOWN_SCHEMA,
                f"no schema found for domain={domain}, action={action}",
                {"schema_key": key},
            )

        try:
            document = json.loads(payload)
        except ValueError as e:
            raise SchemaValidationError(
                ErrorKind.MALFORMED_PAYLOAD,
                "invalid JSON payload",
                str(e),
            ) from e
        except RecursionError as e:
            raise SchemaValidationError(
                ErrorKind.MALFORMED_PAYLOAD,
                "invalid JSON payload",
                "document nested too deeply",
            ) from e

        violations = sorted(validator.iter_errors(document), key=lambda err: err.json_path)
        if violations:
            raise SchemaValidationError(
                ErrorKind.SCHEMA_VIOLATION,
                f"schema validation failed for {key}",
                [f"{err.json_path}: {err.message}" for err in violations],
            )


@lru_cache
def get_schema_registry() -> SchemaRegistry:
    """
    Get the process-wide schema registry.

    Compiled on first use; startup calls this so a broken schema stops
    the process before it accepts traffic.

    Returns:
        SchemaRegistry: Registry of the embedded schemas
    """
    return SchemaRegistry.from_package()
