"""Shared fixtures.

Provides:
- A central database and per-school databases as sqlite files under tmp_path
- One seeded school (school_a) with staff users and students
- A fully wired SimulationService with an adjustable clock
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

import src.app.models.central  # noqa: F401
import src.app.models.migration  # noqa: F401
from src.app.core import background
from src.app.core.connections import TenantConnectionCache
from src.app.core.database import CentralBase, TenantBase, TrackerBase, build_engine
from src.app.core.security import TokenIssuer, hash_password
from src.app.models.central import Tenant, User
from src.app.models.enums import RecordStatus, UserRole
from src.app.models.tenant import Student
from src.app.services.activity_log import ActivityLogService
from src.app.services.student_store import StudentStore
from src.app.services.tenant_registry import TenantRegistry
from src.app.services.users import UserDirectory
from src.app.simulation.repository import SimulationSessionRepository
from src.app.simulation.service import SimulationService

PASSWORD = "s3cret-pass"


class FakeClock:
    """Settable UTC clock."""

    def __init__(self) -> None:
        self.now = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@dataclass
class Seed:
    tenant: Tenant
    other_tenant: Tenant
    professor: User
    other_professor: User
    school_admin: User
    super_admin: User
    student_user: User
    student: Student
    student_2: Student
    inactive_student: Student
    deleted_student: Student
    dummy_student: Student


# ── Databases ─────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def central_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path}/central.db")
    async with engine.begin() as conn:
        await conn.run_sync(CentralBase.metadata.create_all)
        await conn.run_sync(TrackerBase.metadata.create_all)
    yield engine
    # Audit writes may still be in flight
    await background.drain()
    await engine.dispose()


@pytest.fixture
def session_factory(central_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(central_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def connection_cache(tmp_path) -> AsyncGenerator[TenantConnectionCache, None]:
    cache = TenantConnectionCache(base_url=f"sqlite+aiosqlite:///{tmp_path}")
    yield cache
    await cache.dispose_all()


async def create_school_database(cache: TenantConnectionCache, database_name: str) -> AsyncEngine:
    engine = await cache.get_connection(database_name)
    async with engine.begin() as conn:
        await conn.run_sync(TenantBase.metadata.create_all)
    return engine


@pytest_asyncio.fixture
async def seed(session_factory, connection_cache) -> Seed:
    tenant = Tenant(name="École Alpha", database_name="school_a", logo_url="https://cdn.example.com/alpha.png")
    other_tenant = Tenant(name="École Beta", database_name="school_b")
    hashed = hash_password(PASSWORD)

    async with session_factory() as session:
        session.add_all([tenant, other_tenant])
        await session.flush()

        professor = User(
            email="prof@alpha.example.com",
            first_name="Paul",
            last_name="Prof",
            hashed_password=hashed,
            role=UserRole.PROFESSOR.value,
            tenant_id=tenant.id,
            preferred_language="fr",
        )
        other_professor = User(
            email="prof2@alpha.example.com",
            first_name="Pia",
            last_name="Prof",
            hashed_password=hashed,
            role=UserRole.PROFESSOR.value,
            tenant_id=tenant.id,
            preferred_language="en",
        )
        school_admin = User(
            email="admin@alpha.example.com",
            first_name="Ada",
            last_name="Admin",
            hashed_password=hashed,
            role=UserRole.SCHOOL_ADMIN.value,
            tenant_id=tenant.id,
            preferred_language="en",
        )
        super_admin = User(
            email="root@example.com",
            first_name="Sam",
            last_name="Super",
            hashed_password=hashed,
            role=UserRole.SUPER_ADMIN.value,
            tenant_id=None,
            preferred_language="en",
        )
        student_user = User(
            email="learner@alpha.example.com",
            first_name="Lea",
            last_name="Learner",
            hashed_password=hashed,
            role=UserRole.STUDENT.value,
            tenant_id=tenant.id,
        )
        session.add_all([professor, other_professor, school_admin, super_admin, student_user])
        await session.commit()

    engine = await create_school_database(connection_cache, "school_a")
    student = Student(first_name="Alice", last_name="Martin", email="alice@alpha.example.com", student_code="A-001")
    student_2 = Student(first_name="Bruno", last_name="Durand", email="bruno@alpha.example.com", student_code="A-002")
    inactive_student = Student(
        first_name="Chloe",
        last_name="Petit",
        email="chloe@alpha.example.com",
        status=RecordStatus.INACTIVE.value,
    )
    deleted_student = Student(
        first_name="David",
        last_name="Roux",
        email="david@alpha.example.com",
        deleted_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )
    dummy_student = Student(
        first_name="Demo",
        last_name="Zed",
        email="demo@alpha.example.com",
        is_csv_upload=True,
    )
    async with AsyncSession(engine, expire_on_commit=False) as session:
        session.add_all([student, student_2, inactive_student, deleted_student, dummy_student])
        await session.commit()

    return Seed(
        tenant=tenant,
        other_tenant=other_tenant,
        professor=professor,
        other_professor=other_professor,
        school_admin=school_admin,
        super_admin=super_admin,
        student_user=student_user,
        student=student,
        student_2=student_2,
        inactive_student=inactive_student,
        deleted_student=deleted_student,
        dummy_student=dummy_student,
    )


# ── Services ──────────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token_issuer() -> TokenIssuer:
    return TokenIssuer()


@pytest.fixture
def repository(session_factory) -> SimulationSessionRepository:
    return SimulationSessionRepository(session_factory)


@pytest.fixture
def service(session_factory, connection_cache, repository, token_issuer, clock) -> SimulationService:
    return SimulationService(
        repository=repository,
        tenant_registry=TenantRegistry(session_factory),
        connection_cache=connection_cache,
        student_store=StudentStore(),
        user_directory=UserDirectory(session_factory),
        activity_log=ActivityLogService(session_factory),
        token_issuer=token_issuer,
        clock=clock,
    )
