"""API layer: routes and middleware."""

from .middleware import RequestIDMiddleware
from .routes import router

__all__ = ["RequestIDMiddleware", "router"]
