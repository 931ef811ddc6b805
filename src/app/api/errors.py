"""Exception handlers rendering AppError subclasses as localized JSON."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.app.core.errors import AppError, AuthenticationError
from src.app.core.i18n import resolve_language

logger = structlog.get_logger(__name__)


def request_language(request: Request) -> str:
    # Credential claim (set by TenantContextMiddleware) beats Accept-Language.
    return resolve_language(
        getattr(request.state, "language", None),
        request.headers.get("accept-language"),
    ).value


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    language = request_language(request)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    if exc.status_code >= 500:
        logger.error("app_error", code=exc.code, path=request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message(language), "code": exc.code},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
