"""Authentication API endpoints.

Provides staff login, token refresh and current user info. Refresh and
current-user lookups also work with simulation credentials (both paths are
on the simulation write allow-list).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from src.app.api.deps import (
    get_current_user,
    get_issuer,
    get_simulation_service,
    get_user_directory,
)
from src.app.core.errors import AuthenticationError
from src.app.core.security import TokenIssuer, verify_password, verify_token
from src.app.schemas.auth import (
    CurrentUser,
    LoginRequest,
    TokenRefreshRequest,
    TokenResponse,
    UserResponse,
)
from src.app.services.users import UserDirectory, build_staff_claims
from src.app.simulation.service import SimulationService

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    users: UserDirectory = Depends(get_user_directory),
    issuer: TokenIssuer = Depends(get_issuer),
):
    """Authenticate a staff user and return JWT tokens."""
    user = await users.find_active_by_email(body.email)

    if not user or not user.hashed_password:
        raise AuthenticationError("auth.invalid_login")

    if not verify_password(body.password, user.hashed_password):
        raise AuthenticationError("auth.invalid_login")

    tokens = issuer.issue_pair(build_staff_claims(user))
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        access_token_expires_in=tokens.access_token_expires_in,
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    body: TokenRefreshRequest,
    users: UserDirectory = Depends(get_user_directory),
    issuer: TokenIssuer = Depends(get_issuer),
    simulation: SimulationService = Depends(get_simulation_service),
):
    """Exchange a valid refresh token for a new token pair.

    Simulation refresh tokens are only honored while their session is ACTIVE.
    """
    payload = verify_token(body.refresh_token, token_type="refresh")

    if payload.get("is_simulation"):
        tokens = await simulation.refresh(payload)
    else:
        user = await users.find_active_by_id(payload["sub"])
        if not user:
            raise AuthenticationError("auth.user_not_found")
        tokens = issuer.issue_pair(build_staff_claims(user))

    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        access_token_expires_in=tokens.access_token_expires_in,
    )


@router.get("/me", response_model=UserResponse)
async def get_me(user: CurrentUser = Depends(get_current_user)):
    """Return the identity carried by the current access token."""
    return UserResponse(
        id=user.id,
        email=user.email,
        role=user.role.value,
        tenant_id=user.tenant_id,
        first_name=user.first_name,
        last_name=user.last_name,
        is_simulation=user.is_simulation,
        simulation_session_id=user.simulation_session_id,
        original_user_id=user.original_user_id,
        original_user_role=user.original_user_role.value if user.original_user_role else None,
    )
