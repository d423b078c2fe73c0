# =============================================================================
# On-Search Adapter - Server Entry Point
# =============================================================================
"""
Run the adapter under uvicorn.

Usage:
    python -m onsearch_adapter
    onsearch-adapter
"""

import uvicorn

from .config import get_settings


def main() -> None:
    """Start the HTTP server on the configured host and port."""
    settings = get_settings()
    uvicorn.run(
        "onsearch_adapter.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        # structlog owns the log format
        log_config=None,
    )


if __name__ == "__main__":
    main()
