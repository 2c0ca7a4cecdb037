# campusdesk/schemas/enrollment_schemas.py
"""Pydantic schemas for student enrollments."""
from datetime import date
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field


class EnrollmentCreate(BaseModel):
    student_id: UUID
    class_section_id: UUID
    academic_year_id: UUID
    start_date: date


class EnrollmentUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged. An explicit null end_date clears it."""
    status: Optional[str] = Field(default=None, max_length=20)
    end_date: Optional[date] = None
    class_section_id: Optional[UUID] = Field(default=None, description="Set to transfer the enrollment")


class RecalculateRequest(BaseModel):
    class_section_id: UUID
    academic_year_id: UUID


class RecalculateByClassRequest(BaseModel):
    class_id: UUID
    section_id: UUID
    academic_year_id: UUID
