"""Enumerations shared by models, schemas and services.

All enums subclass ``str`` so values are stored and serialized as their
plain string form.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum


class UserRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    SCHOOL_ADMIN = "SCHOOL_ADMIN"
    PROFESSOR = "PROFESSOR"
    STUDENT = "STUDENT"


class RecordStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class SimulationMode(str, Enum):
    READ_ONLY_IMPERSONATION = "READ_ONLY_IMPERSONATION"
    DUMMY_STUDENT = "DUMMY_STUDENT"


class SimulationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ENDED = "ENDED"


class ActivityCounter(str, Enum):
    """Per-session counters incremented while a simulation is running."""

    MODULES_VIEWED = "modules_viewed"
    QUIZZES_VIEWED = "quizzes_viewed"
    AI_CHATS_OPENED = "ai_chats_opened"


class ActivityType(str, Enum):
    SIMULATION_STARTED = "SIMULATION_STARTED"
    SIMULATION_ENDED = "SIMULATION_ENDED"
    SIMULATION_WRITE_BLOCKED = "SIMULATION_WRITE_BLOCKED"


class ActivityLevel(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


ACTIVITY_LEVELS: dict[ActivityType, ActivityLevel] = {
    ActivityType.SIMULATION_STARTED: ActivityLevel.INFO,
    ActivityType.SIMULATION_ENDED: ActivityLevel.INFO,
    ActivityType.SIMULATION_WRITE_BLOCKED: ActivityLevel.WARNING,
}


# ── Time helpers ────────────────────────────────────────────────────────────


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from databases without tz support."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
