"""Persistence for simulation sessions in the central database.

State transitions use single conditional UPDATE statements so two callers
racing to end the same session cannot both succeed: the transition only
applies while the row is still ACTIVE, and a zero rowcount tells the
caller that someone else already handled it.
"""

from __future__ import annotations

import math
import uuid
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.app.models.central import SimulationSession
from src.app.models.enums import ActivityCounter, SimulationStatus, as_utc

logger = structlog.get_logger(__name__)


def compute_duration_seconds(started_at: datetime, ended_at: datetime) -> int:
    """Whole seconds between start and end, never negative."""
    elapsed = (as_utc(ended_at) - as_utc(started_at)).total_seconds()
    return max(0, math.floor(elapsed))


def _as_uuid(value: str | uuid.UUID) -> uuid.UUID | None:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class SimulationSessionRepository:
    """CRUD and state transitions for ``simulation_sessions``.

    Args:
        session_factory: Central database session factory.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ── Reads ───────────────────────────────────────────────────────────

    async def get(self, session_id: str | uuid.UUID) -> SimulationSession | None:
        sid = _as_uuid(session_id)
        if sid is None:
            return None
        async with self._session_factory() as session:
            return await session.get(SimulationSession, sid)

    async def find_latest_active_for_user(self, user_id: str | uuid.UUID) -> SimulationSession | None:
        """Most recently started ACTIVE session of a staff user."""
        uid = _as_uuid(user_id)
        if uid is None:
            return None
        async with self._session_factory() as session:
            result = await session.execute(
                select(SimulationSession)
                .where(
                    SimulationSession.original_user_id == uid,
                    SimulationSession.status == SimulationStatus.ACTIVE.value,
                )
                .order_by(SimulationSession.started_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_active_for_user(self, user_id: str | uuid.UUID) -> list[SimulationSession]:
        uid = _as_uuid(user_id)
        if uid is None:
            return []
        async with self._session_factory() as session:
            result = await session.execute(
                select(SimulationSession)
                .where(
                    SimulationSession.original_user_id == uid,
                    SimulationSession.status == SimulationStatus.ACTIVE.value,
                )
                .order_by(SimulationSession.started_at.desc())
            )
            return list(result.scalars().all())

    async def list_history(
        self,
        filters: dict[str, Any],
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[SimulationSession], int]:
        """Page through sessions newest first.

        Args:
            filters: Column name to value equality filters (e.g. tenant_id).
            page: 1-based page number.
            limit: Page size.

        Returns:
            (sessions on the page, total matching sessions)
        """
        conditions = [getattr(SimulationSession, column) == value for column, value in filters.items()]
        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(SimulationSession).where(*conditions)
            )
            result = await session.execute(
                select(SimulationSession)
                .where(*conditions)
                .order_by(SimulationSession.started_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            return list(result.scalars().all()), int(total or 0)

    # ── Writes ──────────────────────────────────────────────────────────

    async def create(self, **fields: Any) -> SimulationSession:
        """Insert a new ACTIVE session with zeroed counters."""
        record = SimulationSession(
            status=SimulationStatus.ACTIVE.value,
            pages_visited=[],
            modules_viewed=0,
            quizzes_viewed=0,
            ai_chats_opened=0,
            **fields,
        )
        async with self._session_factory() as session:
            session.add(record)
            await session.commit()
            await session.refresh(record)
        return record

    async def end_if_active(
        self,
        record: SimulationSession,
        ended_at: datetime,
    ) -> SimulationSession | None:
        """Transition ``record`` to ENDED only if it is still ACTIVE.

        Returns:
            The updated session, or None when it was no longer ACTIVE.
        """
        duration = compute_duration_seconds(record.started_at, ended_at)
        async with self._session_factory() as session:
            result = await session.execute(
                update(SimulationSession)
                .where(
                    SimulationSession.id == record.id,
                    SimulationSession.status == SimulationStatus.ACTIVE.value,
                )
                .values(
                    status=SimulationStatus.ENDED.value,
                    ended_at=ended_at,
                    duration_seconds=duration,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        if result.rowcount != 1:
            logger.info("simulation_end_skipped", session_id=str(record.id))
            return None
        return await self.get(record.id)

    async def add_page_visit(self, session_id: str | uuid.UUID, path: str) -> bool:
        """Add ``path`` to ``pages_visited`` unless already present.

        Returns:
            True if the session exists and is ACTIVE.
        """
        sid = _as_uuid(session_id)
        if sid is None:
            return False
        async with self._session_factory() as session:
            async with session.begin():
                record = await session.scalar(
                    select(SimulationSession)
                    .where(
                        SimulationSession.id == sid,
                        SimulationSession.status == SimulationStatus.ACTIVE.value,
                    )
                    .with_for_update()
                )
                if record is None:
                    return False
                pages = list(record.pages_visited or [])
                if path not in pages:
                    record.pages_visited = [*pages, path]
        return True

    async def increment_counter(self, session_id: str | uuid.UUID, counter: ActivityCounter) -> bool:
        """Atomically add one to ``counter`` on an ACTIVE session."""
        sid = _as_uuid(session_id)
        if sid is None:
            return False
        column = getattr(SimulationSession, counter.value)
        async with self._session_factory() as session:
            result = await session.execute(
                update(SimulationSession)
                .where(
                    SimulationSession.id == sid,
                    SimulationSession.status == SimulationStatus.ACTIVE.value,
                )
                .values({column: column + 1})
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        return result.rowcount == 1
