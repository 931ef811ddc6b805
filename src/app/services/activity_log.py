"""Audit trail writer.

ActivityLogService.record() writes one row to ``activity_logs``.
record_in_background() schedules that write as best-effort work so a
failing audit store never blocks or fails the caller.
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.app.core.background import spawn_best_effort
from src.app.core.i18n import Language
from src.app.models.central import ActivityLog
from src.app.models.enums import ACTIVITY_LEVELS, ActivityLevel, ActivityType

logger = structlog.get_logger(__name__)

ACTIVITY_CATEGORY = "SIMULATION"

DESCRIPTIONS: dict[ActivityType, dict[Language, str]] = {
    ActivityType.SIMULATION_STARTED: {
        Language.ENGLISH: "{actor} started viewing the platform as student {student}",
        Language.FRENCH: "{actor} a commencé à consulter la plateforme en tant qu'étudiant {student}",
    },
    ActivityType.SIMULATION_ENDED: {
        Language.ENGLISH: "{actor} ended the simulation of student {student} after {duration}s",
        Language.FRENCH: "{actor} a terminé la simulation de l'étudiant {student} après {duration}s",
    },
    ActivityType.SIMULATION_WRITE_BLOCKED: {
        Language.ENGLISH: "Write blocked in simulation mode: {method} {path}",
        Language.FRENCH: "Écriture bloquée en mode simulation : {method} {path}",
    },
}


class Actor(BaseModel):
    id: str | None = None
    email: str | None = None
    role: str | None = None
    tenant_id: str | None = None


class Target(BaseModel):
    type: str
    id: str | None = None


class ActivityEntry(BaseModel):
    activity_type: ActivityType
    actor: Actor
    target: Target | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    description_params: dict[str, Any] = Field(default_factory=dict)
    is_success: bool = True


def _as_uuid(value: str | None) -> uuid.UUID | None:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class ActivityLogService:
    """Persists activity entries to the central database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record(self, entry: ActivityEntry) -> None:
        """Write ``entry``; raises on storage failure."""
        templates = DESCRIPTIONS.get(entry.activity_type, {})
        description = {
            lang.value: template.format(**entry.description_params)
            for lang, template in templates.items()
        }
        level = ACTIVITY_LEVELS.get(entry.activity_type, ActivityLevel.INFO)

        async with self._session_factory() as session:
            session.add(
                ActivityLog(
                    activity_type=entry.activity_type.value,
                    category=ACTIVITY_CATEGORY,
                    level=level.value,
                    actor_id=_as_uuid(entry.actor.id),
                    actor_email=entry.actor.email,
                    actor_role=entry.actor.role,
                    tenant_id=_as_uuid(entry.actor.tenant_id),
                    target_type=entry.target.type if entry.target else None,
                    target_id=entry.target.id if entry.target else None,
                    description=description,
                    details=entry.metadata,
                    is_success=entry.is_success,
                )
            )
            await session.commit()

        logger.info(
            "activity_recorded",
            activity_type=entry.activity_type.value,
            actor_id=entry.actor.id,
        )

    def record_in_background(self, entry: ActivityEntry) -> None:
        """Fire-and-forget variant of record()."""
        spawn_best_effort(
            self.record(entry),
            name="activity_log",
            activity_type=entry.activity_type.value,
        )
