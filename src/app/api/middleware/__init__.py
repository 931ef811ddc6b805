"""API middleware for request context resolution and structured logging."""

from src.app.api.middleware.logging import LoggingMiddleware
from src.app.api.middleware.tenant import TenantContextMiddleware

__all__ = ["LoggingMiddleware", "TenantContextMiddleware"]
