# =============================================================================
# On-Search Adapter - Package Initialization
# =============================================================================
"""
ONDC On-Search Adapter

An ingestion gateway for ONDC network callbacks: validates each payload
against its domain/action schema, stores the raw bytes in object storage,
and publishes a small pointer event to Pub/Sub for asynchronous processing.
"""

__version__ = "1.0.0"
