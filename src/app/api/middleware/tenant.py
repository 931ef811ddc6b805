"""Request context middleware.

Reads the bearer JWT (without rejecting anything; authentication is
enforced by endpoint dependencies) and publishes what it finds:

- TenantContext in contextvars, for code deep in the call stack
- request.state.tenant_id / user_id / language / simulation_session_id,
  for the outer logging and metrics middleware and the error handlers
"""

from __future__ import annotations

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.app.core.security import peek_claims
from src.app.core.tenant import (
    SKIP_TENANT_PATHS,
    TenantContext,
    reset_tenant_context,
    set_tenant_context,
)


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Populate request context from JWT claims when a valid token is present.

    Paths in SKIP_TENANT_PATHS are passed through untouched.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if any(path.startswith(skip) for skip in SKIP_TENANT_PATHS):
            return await call_next(request)

        payload = None
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            payload = peek_claims(auth_header[7:])

        if not payload:
            return await call_next(request)

        request.state.user_id = payload.get("sub")
        request.state.language = payload.get("language")
        request.state.simulation_session_id = payload.get("simulation_session_id")

        tenant_id = payload.get("tenant_id")
        if not tenant_id:
            return await call_next(request)

        request.state.tenant_id = tenant_id
        token = set_tenant_context(
            TenantContext(
                tenant_id=tenant_id,
                user_id=payload.get("sub"),
                role=payload.get("role"),
                simulation_session_id=payload.get("simulation_session_id"),
            )
        )
        try:
            return await call_next(request)
        finally:
            reset_tenant_context(token)
