# =============================================================================
# On-Search Adapter - Configuration
# =============================================================================
"""
Application configuration using Pydantic Settings.

Loads configuration from environment variables with sensible defaults
for local development (MinIO on localhost:9000, Pub/Sub emulator project).
Settings are read once at startup and never re-read mid-request.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        storage_endpoint_url: S3-compatible endpoint (MinIO in development)
        storage_access_key: Access key for the object store
        storage_secret_key: Secret key for the object store
        storage_region: Region name passed to the S3 client
        storage_bucket: Bucket that receives raw payloads
        storage_kind: Backend label written into pointer events
        storage_timeout_seconds: Deadline for a single upload
        gcp_project_id: Google Cloud project hosting the Pub/Sub topic
        pubsub_topic: Topic name for pointer events
        publish_timeout_seconds: Deadline for a broker acknowledgement
        object_key_timezone: IANA zone used for the object key timestamp
        request_timeout_seconds: Overall deadline for one /on-search call
        environment: Current environment (development/staging/production)
        log_level: Logging verbosity level
        service_name: Name of this service for logging/tracing
        host: Interface the HTTP server binds to
        port: Port the HTTP server listens on
    """

    # Object Storage Configuration
    storage_endpoint_url: Optional[str] = "http://localhost:9000"
    storage_access_key: str = "minioadmin"
    storage_secret_key: str = "minioadmin"
    storage_region: str = "us-east-1"
    storage_bucket: str = "ondc-payloads"
    storage_kind: str = "minio"
    storage_timeout_seconds: float = 10.0

    # Pub/Sub Configuration
    gcp_project_id: str = "ondc-adapter-dev"
    pubsub_topic: str = "ondc.on_search.pointer"
    publish_timeout_seconds: float = 10.0

    # Pipeline Configuration
    object_key_timezone: str = "Asia/Kolkata"
    request_timeout_seconds: float = 30.0

    # Application Configuration
    environment: str = "development"
    log_level: str = "INFO"
    service_name: str = "onsearch-adapter"

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8080

    # Pydantic Settings Configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to avoid re-reading environment variables
    on every request.

    Returns:
        Settings: Application configuration instance
    """
    return Settings()
