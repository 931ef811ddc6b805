"""Pydantic schemas for central registry records."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class TenantRecord(BaseModel):
    """School as seen by the services: enough to reach its database."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    database_name: str
    logo_url: str | None = None
    status: str | None = None


class StudentRecord(BaseModel):
    """Student as read from a school's database."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    first_name: str
    last_name: str
    email: str
    student_code: str | None = None
    status: str | None = None
    is_csv_upload: bool = False

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
