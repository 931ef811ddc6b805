"""Typed application errors.

Each error carries an HTTP status, a stable machine-readable code and a
message key into the localized catalog. The API layer renders them with
the caller's language; services raise them without knowing about HTTP.
"""

from __future__ import annotations

from typing import Any

from src.app.core.i18n import Language, translate


class AppError(Exception):
    """Base error for the platform."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    message_key: str = "errors.internal"

    def __init__(self, message_key: str | None = None, **params: Any) -> None:
        if message_key is not None:
            self.message_key = message_key
        self.params = params
        super().__init__(self.message())

    def message(self, language: Language | str | None = None) -> str:
        return translate(self.message_key, language, **self.params)


class ConfigurationError(AppError):
    """Required connection configuration is missing."""

    status_code = 500
    code = "CONFIGURATION_ERROR"
    message_key = "config.tenant_base_url_missing"


class AuthenticationError(AppError):
    """Missing or invalid bearer credential."""

    status_code = 401
    code = "NOT_AUTHENTICATED"
    message_key = "auth.invalid_credentials"


class ForbiddenError(AppError):
    """Caller is not allowed to perform the operation."""

    status_code = 403
    code = "FORBIDDEN"
    message_key = "simulation.forbidden_role"


class WriteBlockedError(ForbiddenError):
    """Write attempted with a simulation credential."""

    code = "WRITE_BLOCKED"
    message_key = "simulation.write_blocked"


class BadRequestError(AppError):
    """Request is well-formed but cannot be honored."""

    status_code = 400
    code = "BAD_REQUEST"


class AlreadySimulatingError(BadRequestError):
    """Simulation started from a credential that is already a simulation."""

    code = "ALREADY_IN_SIMULATION"
    message_key = "simulation.already_in_simulation"


class InvalidStateError(BadRequestError):
    """Illegal simulation session state transition."""

    code = "SESSION_ALREADY_ENDED"
    message_key = "simulation.session_already_ended"


class NotFoundError(AppError):
    """Tenant, student or session does not exist."""

    status_code = 404
    code = "NOT_FOUND"
