"""JWT issuance and verification, and password hashing.

Provides the security primitives used by auth endpoints, the simulation
service and the request pipeline.

Uses bcrypt directly (not passlib) for Python 3.13 compatibility.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import JWTError, jwt

from src.app.config import get_settings
from src.app.core.errors import AuthenticationError

# ── Password Hashing ──────────────────────────────────────────────────────────


def hash_password(password: str) -> str:
    """Hash a plaintext password using bcrypt."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a plaintext password against its bcrypt hash."""
    return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))


# ── Token Issuer ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_token_expires_in: int  # seconds


class TokenIssuer:
    """Signs and verifies JWTs.

    Callers pass plain claim dicts; the issuer adds ``exp``, ``iat`` and
    ``type`` and never lets callers build raw tokens themselves.
    """

    def __init__(self, secret_key: str | None = None, algorithm: str | None = None) -> None:
        settings = get_settings()
        self._secret_key = secret_key or settings.JWT_SECRET_KEY
        self._algorithm = algorithm or settings.JWT_ALGORITHM

    def sign(self, claims: dict[str, Any], expires_delta: timedelta, token_type: str = "access") -> str:
        to_encode = dict(claims)
        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + expires_delta,
            "iat": now,
            "type": token_type,
        })
        return jwt.encode(to_encode, self._secret_key, algorithm=self._algorithm)

    def issue_pair(
        self,
        claims: dict[str, Any],
        access_expires: timedelta | None = None,
        refresh_expires: timedelta | None = None,
    ) -> TokenPair:
        """Sign an access/refresh pair carrying the same claims."""
        settings = get_settings()
        access_expires = access_expires or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
        refresh_expires = refresh_expires or timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS)
        return TokenPair(
            access_token=self.sign(claims, access_expires, "access"),
            refresh_token=self.sign(claims, refresh_expires, "refresh"),
            access_token_expires_in=int(access_expires.total_seconds()),
        )

    def decode(self, token: str, token_type: str = "access") -> dict[str, Any]:
        """Decode and validate a JWT.

        Args:
            token: The JWT string.
            token_type: Expected token type ("access" or "refresh").

        Returns:
            The decoded payload dict.

        Raises:
            AuthenticationError: If the token is invalid, expired, or wrong type.
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except JWTError:
            raise AuthenticationError()
        if payload.get("type") != token_type or not payload.get("sub"):
            raise AuthenticationError()
        return payload


def get_token_issuer() -> TokenIssuer:
    """Token issuer configured from settings."""
    return TokenIssuer()


# ── Module-level helpers ──────────────────────────────────────────────────────


def verify_token(token: str, token_type: str = "access") -> dict:
    """Decode a token with the default issuer."""
    return get_token_issuer().decode(token, token_type)


def peek_claims(token: str) -> dict | None:
    """Best-effort decode for logging and context; returns None when invalid."""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
