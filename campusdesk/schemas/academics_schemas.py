# campusdesk/schemas/academics_schemas.py
"""Pydantic schemas for academic years, classes, sections and class-sections."""
from datetime import date
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, model_validator


class AcademicYearCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20, description="e.g. 2025-26")
    start_date: date
    end_date: date
    is_current: bool = False

    @model_validator(mode='after')
    def validate_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError('end_date must be after start_date')
        return self


class ClassCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    code: Optional[str] = Field(default=None, max_length=20)


class SectionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=20)
    code: Optional[str] = Field(default=None, max_length=20)


class ClassSectionCreate(BaseModel):
    class_id: UUID
    section_id: UUID
    academic_year_id: UUID
    capacity: int = Field(default=40, gt=0)
