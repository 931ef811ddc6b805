"""Staff user directory in the central database."""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.app.models.central import User
from src.app.models.enums import RecordStatus


def build_staff_claims(user: User) -> dict[str, Any]:
    """JWT claims for a staff credential."""
    return {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "tenant_id": str(user.tenant_id) if user.tenant_id else None,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "language": user.preferred_language,
        "is_simulation": False,
    }


class UserDirectory:
    """Lookups of active staff accounts."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_active_by_id(self, user_id: str) -> User | None:
        try:
            uid = uuid.UUID(str(user_id))
        except ValueError:
            return None
        async with self._session_factory() as session:
            result = await session.execute(
                select(User).where(
                    User.id == uid,
                    User.deleted_at.is_(None),
                    or_(User.status.is_(None), User.status != RecordStatus.INACTIVE.value),
                )
            )
            return result.scalar_one_or_none()

    async def find_active_by_email(self, email: str) -> User | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(User).where(
                    User.email == email.lower(),
                    User.deleted_at.is_(None),
                    or_(User.status.is_(None), User.status != RecordStatus.INACTIVE.value),
                )
            )
            return result.scalar_one_or_none()
