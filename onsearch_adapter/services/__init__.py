# =============================================================================
# On-Search Adapter - Services Package
# =============================================================================
"""Service layer: envelope reader, schema registry, storage, publisher, pipeline."""

from .envelope import extract_context
from .orchestrator import OnSearchIngestor, get_ingestor
from .pubsub import PubSubPublisher, get_publisher
from .registry import SchemaRegistry, get_schema_registry
from .storage import ObjectStore, get_object_store

__all__ = [
    "ObjectStore",
    "OnSearchIngestor",
    "PubSubPublisher",
    "SchemaRegistry",
    "extract_context",
    "get_ingestor",
    "get_object_store",
    "get_publisher",
    "get_schema_registry",
]
