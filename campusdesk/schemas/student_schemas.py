# campusdesk/schemas/student_schemas.py
"""Pydantic schemas for composite student creation and student updates."""
from datetime import date
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

RELATIONSHIPS = ("father", "mother", "guardian")


class ParentCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    relation: str = Field(..., description="father, mother or guardian")
    phone: Optional[str] = Field(default=None, max_length=20)
    occupation: Optional[str] = Field(default=None, max_length=100)
    is_primary: bool = False
    is_guardian: bool = False

    @field_validator('relation')
    @classmethod
    def validate_relation(cls, v):
        value = v.strip().lower()
        if value not in RELATIONSHIPS:
            raise ValueError(f"relation must be one of {', '.join(RELATIONSHIPS)}")
        return value


class StudentCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    middle_name: Optional[str] = Field(default=None, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    dob: Optional[date] = None
    gender: Optional[str] = Field(default=None, max_length=20)

    admission_no: str = Field(..., min_length=1, max_length=50)
    admission_date: date
    status: str = Field(default="active", max_length=20)

    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=20)

    # Login identity
    password: Optional[str] = Field(default=None, min_length=8)
    role_code: Optional[str] = Field(default=None, max_length=50)

    # Initial enrollment
    class_id: Optional[UUID] = None
    section_id: Optional[UUID] = None
    academic_year_id: Optional[UUID] = None

    parents: List[ParentCreate] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_enrollment_and_login(self):
        enrollment_fields = (self.class_id, self.section_id, self.academic_year_id)
        if any(enrollment_fields) and not all(enrollment_fields):
            raise ValueError('class_id, section_id and academic_year_id must be given together')
        if self.password and not self.email:
            raise ValueError('email is required when password is given')
        return self

    @property
    def wants_enrollment(self) -> bool:
        return self.class_id is not None


class StudentUpdate(BaseModel):
    """Partial update. Names, admission fields, email and phone are left
    unchanged when omitted or null; middle_name, dob and gender are cleared
    by an explicit null."""
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    middle_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    dob: Optional[date] = None
    gender: Optional[str] = Field(default=None, max_length=20)

    admission_no: Optional[str] = Field(default=None, min_length=1, max_length=50)
    admission_date: Optional[date] = None
    status: Optional[str] = Field(default=None, max_length=20)

    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=20)
