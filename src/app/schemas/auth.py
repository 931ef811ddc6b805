"""Pydantic schemas for authentication API endpoints and the resolved caller."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, EmailStr, Field

from src.app.models.enums import UserRole


class LoginRequest(BaseModel):
    """Request schema for staff login."""

    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=1, description="User password")


class TokenResponse(BaseModel):
    """Response schema with access and refresh tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    access_token_expires_in: int | None = None


class TokenRefreshRequest(BaseModel):
    """Request schema to refresh an access token."""

    refresh_token: str = Field(..., description="Valid refresh token")


class CurrentUser(BaseModel):
    """Caller identity decoded from a bearer credential.

    A simulation credential looks like a student credential with the
    simulation fields set; business logic sees the student.
    """

    id: str
    email: str
    role: UserRole
    tenant_id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    language: str | None = None
    is_simulation: bool = False
    simulation_session_id: str | None = None
    original_user_id: str | None = None
    original_user_role: UserRole | None = None

    @classmethod
    def from_claims(cls, payload: dict[str, Any]) -> CurrentUser:
        return cls(
            id=str(payload["sub"]),
            email=payload.get("email", ""),
            role=payload.get("role", UserRole.STUDENT.value),
            tenant_id=payload.get("tenant_id"),
            first_name=payload.get("first_name"),
            last_name=payload.get("last_name"),
            language=payload.get("language"),
            is_simulation=bool(payload.get("is_simulation", False)),
            simulation_session_id=payload.get("simulation_session_id"),
            original_user_id=payload.get("original_user_id"),
            original_user_role=payload.get("original_user_role"),
        )


class UserResponse(BaseModel):
    """Response schema for current user info."""

    id: str
    email: str
    role: str
    tenant_id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    is_simulation: bool = False
    simulation_session_id: str | None = None
    original_user_id: str | None = None
    original_user_role: str | None = None
