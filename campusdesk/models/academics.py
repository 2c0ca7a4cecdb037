# campusdesk/models/academics.py
from sqlalchemy import Column, String, Integer, Date, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from .base import Base


class AcademicYear(Base):
    __tablename__ = "academic_years"

    code = Column(String(20), nullable=False, unique=True)  # e.g. "2025-26"
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_current = Column(Boolean, default=False, nullable=False)

    class_sections = relationship("ClassSection", back_populates="academic_year")


class SchoolClass(Base):
    __tablename__ = "classes"

    name = Column(String(50), nullable=False, index=True)
    code = Column(String(20))

    class_sections = relationship("ClassSection", back_populates="school_class")


class Section(Base):
    __tablename__ = "sections"

    name = Column(String(20), nullable=False, index=True)
    code = Column(String(20))

    class_sections = relationship("ClassSection", back_populates="section")


class ClassSection(Base):
    """A class/section pairing for one academic year; the roll numbering scope."""
    __tablename__ = "class_sections"

    class_id = Column(UUID(as_uuid=True), ForeignKey("classes.id"), nullable=False, index=True)
    section_id = Column(UUID(as_uuid=True), ForeignKey("sections.id"), nullable=False, index=True)
    academic_year_id = Column(UUID(as_uuid=True), ForeignKey("academic_years.id"), nullable=False, index=True)
    capacity = Column(Integer, default=40)

    __table_args__ = (
        UniqueConstraint("class_id", "section_id", "academic_year_id", name="uq_class_section_year"),
    )

    school_class = relationship("SchoolClass", back_populates="class_sections")
    section = relationship("Section", back_populates="class_sections")
    academic_year = relationship("AcademicYear", back_populates="class_sections")
    enrollments = relationship("Enrollment", back_populates="class_section")
