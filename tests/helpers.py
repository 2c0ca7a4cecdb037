"""Seed and inspection helpers shared by the test modules."""
from datetime import date
from types import SimpleNamespace
from typing import Dict, Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update

from campusdesk.models import (
    AcademicYear, ClassSection, Enrollment, EnrollmentStatus, Person, Permission,
    Role, RolePermission, SchoolClass, Section, Student, User, UserRole,
)

YEAR_START = date(2025, 4, 1)


async def seed_school(session_factory) -> SimpleNamespace:
    async with session_factory() as session:
        year = AcademicYear(code="2025-26", start_date=YEAR_START, end_date=date(2026, 3, 31), is_current=True)
        next_year = AcademicYear(code="2026-27", start_date=date(2026, 4, 1), end_date=date(2027, 3, 31))
        grade = SchoolClass(name="Grade 5", code="G5")
        section_a = Section(name="A", code="A")
        section_b = Section(name="B", code="B")
        session.add_all([year, next_year, grade, section_a, section_b])
        await session.flush()

        class_section_a = ClassSection(class_id=grade.id, section_id=section_a.id, academic_year_id=year.id)
        class_section_b = ClassSection(class_id=grade.id, section_id=section_b.id, academic_year_id=year.id)
        next_class_section = ClassSection(class_id=grade.id, section_id=section_a.id, academic_year_id=next_year.id)
        session.add_all([class_section_a, class_section_b, next_class_section])
        await session.commit()

        return SimpleNamespace(
            year_id=year.id,
            next_year_id=next_year.id,
            class_id=grade.id,
            section_a_id=section_a.id,
            section_b_id=section_b.id,
            class_section_a_id=class_section_a.id,
            class_section_b_id=class_section_b.id,
            next_class_section_id=next_class_section.id,
        )


async def add_student(session_factory, first_name: str, last_name: str, admission_no: Optional[str] = None) -> UUID:
    async with session_factory() as session:
        person = Person(first_name=first_name, last_name=last_name, display_name=f"{first_name} {last_name}")
        session.add(person)
        await session.flush()
        student = Student(
            person_id=person.id,
            admission_no=admission_no or f"ADM-{uuid4().hex[:8]}",
            admission_date=YEAR_START,
        )
        session.add(student)
        await session.commit()
        return student.id


async def add_enrollment(
    session_factory,
    student_id: UUID,
    class_section_id: UUID,
    academic_year_id: UUID,
    status: str = EnrollmentStatus.ACTIVE.value,
    roll_number: Optional[int] = None,
) -> UUID:
    """Insert an enrollment row directly, without triggering any recalculation."""
    async with session_factory() as session:
        enrollment = Enrollment(
            student_id=student_id,
            class_section_id=class_section_id,
            academic_year_id=academic_year_id,
            status=status,
            roll_number=roll_number,
            start_date=YEAR_START,
        )
        session.add(enrollment)
        await session.commit()
        return enrollment.id


async def set_enrollment(session_factory, enrollment_id: UUID, **values) -> None:
    async with session_factory() as session:
        await session.execute(update(Enrollment).where(Enrollment.id == enrollment_id).values(**values))
        await session.commit()


async def get_enrollment(session_factory, enrollment_id: UUID) -> Enrollment:
    async with session_factory() as session:
        return (await session.execute(select(Enrollment).where(Enrollment.id == enrollment_id))).scalar_one()


async def roll_numbers(session_factory, class_section_id: UUID, academic_year_id: UUID) -> Dict[str, Optional[int]]:
    """First name -> roll number for the counted enrollments of a scope."""
    async with session_factory() as session:
        result = await session.execute(
            select(Person.first_name, Enrollment.roll_number)
            .select_from(Enrollment)
            .join(Student, Enrollment.student_id == Student.id)
            .join(Person, Student.person_id == Person.id)
            .where(
                Enrollment.class_section_id == class_section_id,
                Enrollment.academic_year_id == academic_year_id,
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
                Enrollment.deleted_at.is_(None),
                Student.deleted_at.is_(None),
            )
        )
        return {first_name: roll_number for first_name, roll_number in result.all()}


async def count_rows(session_factory, model) -> int:
    async with session_factory() as session:
        return len((await session.execute(select(model.id))).all())


async def add_user(session_factory, role_code: str, permission_codes=(), account_status: str = "active") -> UUID:
    async with session_factory() as session:
        role = Role(code=role_code, name=role_code.title())
        user = User(account_status=account_status)
        session.add_all([role, user])
        await session.flush()
        session.add(UserRole(user_id=user.id, role_id=role.id))
        for code in permission_codes:
            permission = Permission(code=code)
            session.add(permission)
            await session.flush()
            session.add(RolePermission(role_id=role.id, permission_id=permission.id))
        await session.commit()
        return user.id
