# campusdesk/models/student.py
from sqlalchemy import Column, String, Date, Boolean, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from .base import Base


class Student(Base):
    __tablename__ = "students"

    person_id = Column(UUID(as_uuid=True), ForeignKey("persons.id"), nullable=False, index=True)
    admission_no = Column(String(50), nullable=False, unique=True, index=True)
    admission_date = Column(Date, nullable=False)
    status = Column(String(20), default="active", nullable=False)

    person = relationship("Person")
    enrollments = relationship("Enrollment", back_populates="student")
    parent_links = relationship("StudentParent", back_populates="student")


class Parent(Base):
    __tablename__ = "parents"

    person_id = Column(UUID(as_uuid=True), ForeignKey("persons.id"), nullable=False, index=True)
    occupation = Column(String(100))

    person = relationship("Person")


class StudentParent(Base):
    __tablename__ = "student_parents"

    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id"), nullable=False, index=True)
    parent_id = Column(UUID(as_uuid=True), ForeignKey("parents.id"), nullable=False, index=True)
    relationship_type = Column(String(20), nullable=False)  # father, mother, guardian
    is_primary_contact = Column(Boolean, default=False, nullable=False)
    is_legal_guardian = Column(Boolean, default=False, nullable=False)

    student = relationship("Student", back_populates="parent_links")
    parent = relationship("Parent")
