"""
On-Search Adapter - Request Correlation Middleware

Every request gets an ID (the incoming X-Request-ID header, or a fresh
uuid4). It is bound into structlog's context variables for the duration
of the request and echoed on the response. Request start and completion
are logged with timing, except for health check paths.
"""

import time
import uuid
from typing import Awaitable, Callable, Iterable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp


REQUEST_ID_HEADER = "X-Request-ID"

logger = structlog.get_logger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Binds a request ID to logs and the response headers."""

    def __init__(self, app: ASGIApp, quiet_paths: Iterable[str] = ("/health",)) -> None:
        super().__init__(app)
        self.quiet_paths = frozenset(quiet_paths)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        quiet = request.url.path in self.quiet_paths

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        start = time.perf_counter()
        try:
            if not quiet:
                logger.info(
                    "request_started",
                    content_length=request.headers.get("content-length"),
                    client=request.client.host if request.client else None,
                )
            response = await call_next(request)
            if not quiet:
                logger.info(
                    "request_completed",
                    status_code=response.status_code,
                    duration_ms=round((time.perf_counter() - start) * 1000, 2),
                )
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
