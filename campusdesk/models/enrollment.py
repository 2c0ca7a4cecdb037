# campusdesk/models/enrollment.py
import enum
import uuid
from typing import NamedTuple

from sqlalchemy import Column, String, Integer, Date, ForeignKey, Index, and_
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from .base import Base


class RollScope(NamedTuple):
    """One independent roll numbering domain."""
    class_section_id: uuid.UUID
    academic_year_id: uuid.UUID


class EnrollmentStatus(str, enum.Enum):
    ACTIVE = "active"
    WITHDRAWN = "withdrawn"
    TRANSFERRED = "transferred"
    COMPLETED = "completed"
    PROMOTED = "promoted"


class Enrollment(Base):
    __tablename__ = "student_enrollments"

    # Foreign Keys
    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id"), nullable=False, index=True)
    class_section_id = Column(UUID(as_uuid=True), ForeignKey("class_sections.id"), nullable=False, index=True)
    academic_year_id = Column(UUID(as_uuid=True), ForeignKey("academic_years.id"), nullable=False, index=True)

    # Enrollment Details
    status = Column(String(20), default=EnrollmentStatus.ACTIVE.value, nullable=False)
    roll_number = Column(Integer, nullable=True)  # Written only by the roll number recalculator
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)  # Internal user id of the caller

    # Relationships
    student = relationship("Student", back_populates="enrollments")
    class_section = relationship("ClassSection", back_populates="enrollments")
    academic_year = relationship("AcademicYear")

    @property
    def scope(self) -> RollScope:
        return RollScope(self.class_section_id, self.academic_year_id)

    @property
    def is_counted(self) -> bool:
        """Active and not soft-deleted: takes part in roll numbering."""
        return self.status == EnrollmentStatus.ACTIVE.value and self.deleted_at is None


_counted = and_(
    Enrollment.status == EnrollmentStatus.ACTIVE.value,
    Enrollment.deleted_at.is_(None),
)

# Dense roll numbers are unique per scope among counted rows. Withdrawn and
# soft-deleted rows keep their last number without blocking reuse.
Index(
    "uq_enrollment_scope_roll",
    Enrollment.class_section_id,
    Enrollment.academic_year_id,
    Enrollment.roll_number,
    unique=True,
    postgresql_where=_counted,
    sqlite_where=_counted,
)

# At most one active enrollment per student and academic year
Index(
    "uq_enrollment_student_year_active",
    Enrollment.student_id,
    Enrollment.academic_year_id,
    unique=True,
    postgresql_where=_counted,
    sqlite_where=_counted,
)
