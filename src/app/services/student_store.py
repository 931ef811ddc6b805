"""Student lookups against a school's own database.

Every method takes the tenant engine handed out by TenantConnectionCache;
the store holds no connection state of its own.
"""

from __future__ import annotations

import uuid

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from src.app.models.enums import RecordStatus
from src.app.models.tenant import Student
from src.app.schemas.tenant import StudentRecord


def _student_to_record(student: Student) -> StudentRecord:
    return StudentRecord(
        id=str(student.id),
        first_name=student.first_name,
        last_name=student.last_name,
        email=student.email,
        student_code=student.student_code,
        status=student.status,
        is_csv_upload=bool(student.is_csv_upload),
    )


class StudentStore:
    """Read access to the ``students`` table of a tenant database."""

    async def find_active_student_by_id(
        self,
        engine: AsyncEngine,
        student_id: str,
    ) -> StudentRecord | None:
        """Return the student unless missing or soft-deleted.

        Status is returned as stored; callers decide what INACTIVE means.
        """
        try:
            sid = uuid.UUID(str(student_id))
        except ValueError:
            return None

        async with AsyncSession(engine, expire_on_commit=False) as session:
            result = await session.execute(
                select(Student).where(Student.id == sid, Student.deleted_at.is_(None))
            )
            student = result.scalar_one_or_none()
        return _student_to_record(student) if student else None

    async def list_active_students(
        self,
        engine: AsyncEngine,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[StudentRecord], int]:
        """Page through active, non-deleted students sorted by name.

        Returns:
            (students on the page, total matching students)
        """
        conditions = [Student.deleted_at.is_(None), Student.status == RecordStatus.ACTIVE.value]
        if search:
            pattern = f"%{search.strip().lower()}%"
            conditions.append(
                or_(
                    func.lower(Student.first_name).like(pattern),
                    func.lower(Student.last_name).like(pattern),
                    func.lower(Student.email).like(pattern),
                    func.lower(func.coalesce(Student.student_code, "")).like(pattern),
                )
            )

        async with AsyncSession(engine, expire_on_commit=False) as session:
            total = await session.scalar(select(func.count()).select_from(Student).where(*conditions))
            result = await session.execute(
                select(Student)
                .where(*conditions)
                .order_by(Student.last_name, Student.first_name)
                .offset((page - 1) * limit)
                .limit(limit)
            )
            students = result.scalars().all()

        return [_student_to_record(s) for s in students], int(total or 0)
