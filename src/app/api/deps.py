"""FastAPI dependency injection for services and authentication.

Services are built once at startup (see src.app.main.wire_services) and
stored on ``app.state``; these dependencies hand them to endpoints. The
caller identity comes from the bearer JWT.
"""

from __future__ import annotations

from fastapi import Depends, Request

from src.app.core.errors import AuthenticationError
from src.app.core.security import TokenIssuer, peek_claims, verify_token
from src.app.schemas.auth import CurrentUser
from src.app.services.users import UserDirectory
from src.app.simulation.guard import SimulationWriteGuard
from src.app.simulation.service import ClientInfo, SimulationService


def get_simulation_service(request: Request) -> SimulationService:
    return request.app.state.simulation_service


def get_user_directory(request: Request) -> UserDirectory:
    return request.app.state.user_directory


def get_simulation_guard(request: Request) -> SimulationWriteGuard:
    guard = getattr(request.app.state, "simulation_guard", None)
    return guard if guard is not None else SimulationWriteGuard()


def get_client_info(request: Request) -> ClientInfo:
    forwarded = request.headers.get("X-Forwarded-For")
    ip_address = forwarded.split(",")[0].strip() if forwarded else (request.client.host if request.client else None)
    return ClientInfo(ip_address=ip_address, user_agent=request.headers.get("User-Agent"))


# ── Authentication ──────────────────────────────────────────────────────────


async def get_optional_user(request: Request) -> CurrentUser | None:
    """Decode the bearer access token if one is presented.

    Raises:
        AuthenticationError: If a token is presented but invalid.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    payload = verify_token(auth_header[7:], token_type="access")
    return CurrentUser.from_claims(payload)


async def get_presented_user(request: Request) -> CurrentUser | None:
    """Identity of a valid bearer access token, or None.

    Never raises: an expired, forged or non-access token counts as no
    credential. Endpoints that need a caller still authenticate strictly
    through get_current_user.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    payload = peek_claims(auth_header[7:])
    if not payload or payload.get("type") != "access" or not payload.get("sub"):
        return None
    return CurrentUser.from_claims(payload)


async def get_current_user(user: CurrentUser | None = Depends(get_optional_user)) -> CurrentUser:
    """Require an authenticated caller."""
    if user is None:
        raise AuthenticationError("auth.not_authenticated")
    return user


# ── Simulation write policy ─────────────────────────────────────────────────


async def enforce_simulation_write_policy(
    request: Request,
    user: CurrentUser | None = Depends(get_presented_user),
    guard: SimulationWriteGuard = Depends(get_simulation_guard),
) -> None:
    """Router-level dependency applying the simulation write guard.

    Allowed reads made with a simulation credential are also recorded as
    page visits on the session, in the background.
    """
    guard.check(user, request.method, request.url.path, request.scope.get("endpoint"))

    if user is not None and user.is_simulation and user.simulation_session_id and request.method == "GET":
        service = getattr(request.app.state, "simulation_service", None)
        if service is not None:
            service.track_page_visit_in_background(user.simulation_session_id, request.url.path)


def get_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer
