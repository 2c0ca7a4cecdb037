# campusdesk/services/student_service.py
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .base_service import BaseService
from .enrollment_service import EnrollmentService
from .identity_service import IdentityProviderClient
from .roll_number_service import RollNumberRecalculator
from ..core.exceptions import (
    ConstraintViolation, IdentityProviderError, NotFoundError, StudentCreationError, ValidationError
)
from ..models.academics import ClassSection
from ..models.enrollment import Enrollment, EnrollmentStatus, RollScope
from ..models.person import Person, PersonContact
from ..models.student import Parent, Student, StudentParent
from ..models.user import Role, User, UserRole
from ..schemas.student_schemas import StudentCreate, StudentUpdate

logger = logging.getLogger(__name__)

DEFAULT_ROLE_CODE = "student"


class StudentService(BaseService[Student]):
    def __init__(
        self,
        db: AsyncSession,
        recalculator: Optional[RollNumberRecalculator] = None,
        identity_client: Optional[IdentityProviderClient] = None,
    ):
        super().__init__(Student, db)
        self.identity_client = identity_client
        self.enrollments = EnrollmentService(db, recalculator)

    async def get_by_admission_no(self, admission_no: str) -> Optional[Student]:
        stmt = select(self.model).where(self.model.admission_no == admission_no)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_with_person(self, student_id: UUID) -> Optional[Student]:
        stmt = select(self.model).options(selectinload(self.model.person)).where(
            self.model.id == student_id,
            self.model.deleted_at.is_(None)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def resolve_class_section(self, class_id: UUID, section_id: UUID, academic_year_id: UUID) -> Optional[ClassSection]:
        stmt = select(ClassSection).where(
            ClassSection.class_id == class_id,
            ClassSection.section_id == section_id,
            ClassSection.academic_year_id == academic_year_id,
            ClassSection.deleted_at.is_(None)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    @asynccontextmanager
    async def _step(self, step: str):
        try:
            yield
        except IntegrityError as e:
            raise StudentCreationError(step, f"Conflicts with an existing record: {e.orig}") from e
        except (SQLAlchemyError, IdentityProviderError) as e:
            raise StudentCreationError(step, getattr(e, "message", None) or str(e)) from e

    async def create_student_with_enrollment(self, data: StudentCreate, created_by: Optional[UUID] = None) -> Student:
        """Create person, student, contacts, optional login, optional parents and an
        optional initial enrollment in one transaction.

        Roll numbers for the enrollment's scope are recalculated only after the
        transaction commits; a recalculation failure is logged and does not undo
        the student.
        """
        if await self.get_by_admission_no(data.admission_no):
            raise ValidationError("Admission number already exists", field="admission_no")

        class_section = None
        if data.wants_enrollment:
            class_section = await self.resolve_class_section(data.class_id, data.section_id, data.academic_year_id)
            if not class_section:
                raise ValidationError(
                    "No class section exists for this class, section and academic year",
                    field="section_id"
                )

        try:
            async with self._step("person"):
                person = Person(
                    first_name=data.first_name,
                    middle_name=data.middle_name,
                    last_name=data.last_name,
                    dob=data.dob,
                    gender=data.gender,
                    display_name=f"{data.first_name} {data.last_name}",
                )
                self.db.add(person)
                await self.db.flush()

            async with self._step("student"):
                student = Student(
                    person_id=person.id,
                    admission_no=data.admission_no,
                    admission_date=data.admission_date,
                    status=data.status,
                )
                self.db.add(student)
                await self.db.flush()

            async with self._step("contacts"):
                if data.email:
                    self.db.add(PersonContact(person_id=person.id, contact_type="email", contact_value=str(data.email), is_primary=True))
                if data.phone:
                    self.db.add(PersonContact(person_id=person.id, contact_type="phone", contact_value=data.phone, is_primary=True))
                await self.db.flush()

            if data.password:
                async with self._step("identity"):
                    await self._create_login(person, data)

            if class_section:
                async with self._step("enrollment"):
                    await self.enrollments.add_enrollment(
                        student_id=student.id,
                        class_section_id=class_section.id,
                        academic_year_id=data.academic_year_id,
                        start_date=data.admission_date,
                        created_by=created_by,
                    )

            if data.parents:
                async with self._step("parents"):
                    await self._create_parents(student, data)

            async with self._step("commit"):
                await self.db.commit()
        except Exception:
            await self.db.rollback()
            self.enrollments.discard_dirty_scopes()
            raise

        logger.info("Created student %s (%s)", student.id, data.admission_no)
        await self.enrollments.run_post_commit()
        return student

    async def list_students(self, page: int = 1, size: int = 20, search: Optional[str] = None) -> dict:
        """Paginated students ordered by display name, each with primary
        contacts and the current active enrollment."""
        stmt = (
            select(self.model)
            .join(Person, self.model.person_id == Person.id)
            .options(selectinload(self.model.person))
            .where(self.model.deleted_at.is_(None))
        )
        count_stmt = (
            select(func.count())
            .select_from(self.model)
            .join(Person, self.model.person_id == Person.id)
            .where(self.model.deleted_at.is_(None))
        )
        if search:
            pattern = f"%{search}%"
            matches = or_(Person.display_name.ilike(pattern), self.model.admission_no.ilike(pattern))
            stmt = stmt.where(matches)
            count_stmt = count_stmt.where(matches)

        total = (await self.db.execute(count_stmt)).scalar()
        stmt = stmt.order_by(Person.display_name, self.model.admission_no).offset((page - 1) * size).limit(size)
        students = (await self.db.execute(stmt)).scalars().all()

        contacts = await self._primary_contacts([student.person_id for student in students])
        current = await self._current_enrollments([student.id for student in students])

        return {
            "items": [
                {
                    "student": student,
                    "email": contacts.get((student.person_id, "email")),
                    "phone": contacts.get((student.person_id, "phone")),
                    "current_enrollment": current.get(student.id),
                }
                for student in students
            ],
            "total": total,
            "page": page,
            "size": size,
            "total_pages": (total + size - 1) // size,
            "has_next": page * size < total,
            "has_previous": page > 1,
        }

    async def update_student(self, student_id: UUID, data: StudentUpdate) -> Student:
        """Partial update of person, student and contact fields.

        A changed first or last name moves the student within the ordering of
        every scope they are actively enrolled in, so those scopes are
        recalculated after commit.
        """
        student = await self.get_with_person(student_id)
        if not student:
            raise NotFoundError("Student", student_id)

        changes = data.model_dump(exclude_unset=True)

        admission_no = changes.get("admission_no")
        if admission_no and admission_no != student.admission_no and await self.get_by_admission_no(admission_no):
            raise ValidationError("Admission number already exists", field="admission_no")

        person = student.person
        renamed = False
        for field in ("first_name", "last_name"):
            value = changes.get(field)
            if value is not None and value != getattr(person, field):
                setattr(person, field, value)
                renamed = True
        if renamed:
            person.display_name = f"{person.first_name} {person.last_name}"

        for field in ("middle_name", "dob", "gender"):
            if field in changes:
                setattr(person, field, changes[field])

        for field in ("admission_no", "admission_date", "status"):
            if changes.get(field) is not None:
                setattr(student, field, changes[field])

        if changes.get("email"):
            await self._set_primary_contact(person.id, "email", str(changes["email"]))
        if changes.get("phone"):
            await self._set_primary_contact(person.id, "phone", changes["phone"])

        if renamed:
            self.enrollments.mark_dirty(*await self._counted_scopes(student.id))

        await self._commit("Student update")
        logger.info("Updated student %s", student.id)
        await self.enrollments.run_post_commit()
        return student

    async def delete_student(self, student_id: UUID) -> Student:
        """Soft delete; the student's active enrollments leave their scopes' numbering."""
        student = await self.get(student_id)
        if not student:
            raise NotFoundError("Student", student_id)

        self.enrollments.mark_dirty(*await self._counted_scopes(student.id))
        student.deleted_at = datetime.now(timezone.utc)

        await self._commit("Student deletion")
        logger.info("Deleted student %s (%s)", student.id, student.admission_no)
        await self.enrollments.run_post_commit()
        return student

    async def _commit(self, action: str) -> None:
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            self.enrollments.discard_dirty_scopes()
            logger.error("%s rejected by the store: %s", action, e.orig)
            raise ConstraintViolation(f"{action} conflicts with an existing record") from e

    async def _counted_scopes(self, student_id: UUID) -> List[RollScope]:
        result = await self.db.execute(
            select(Enrollment.class_section_id, Enrollment.academic_year_id)
            .where(
                Enrollment.student_id == student_id,
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
                Enrollment.deleted_at.is_(None),
            )
            .distinct()
        )
        return [RollScope(*row) for row in result.all()]

    async def _current_enrollments(self, student_ids: List[UUID]) -> Dict[UUID, Enrollment]:
        if not student_ids:
            return {}
        result = await self.db.execute(
            select(Enrollment)
            .where(
                Enrollment.student_id.in_(student_ids),
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
                Enrollment.deleted_at.is_(None),
            )
            .order_by(Enrollment.start_date)
        )
        # Latest start date wins
        return {enrollment.student_id: enrollment for enrollment in result.scalars().all()}

    async def _primary_contacts(self, person_ids: List[UUID]) -> Dict[tuple, str]:
        if not person_ids:
            return {}
        result = await self.db.execute(
            select(PersonContact.person_id, PersonContact.contact_type, PersonContact.contact_value)
            .where(
                PersonContact.person_id.in_(person_ids),
                PersonContact.is_primary.is_(True),
                PersonContact.deleted_at.is_(None),
            )
        )
        return {(person_id, contact_type): value for person_id, contact_type, value in result.all()}

    async def _set_primary_contact(self, person_id: UUID, contact_type: str, value: str) -> None:
        result = await self.db.execute(
            select(PersonContact).where(
                PersonContact.person_id == person_id,
                PersonContact.contact_type == contact_type,
                PersonContact.is_primary.is_(True),
                PersonContact.deleted_at.is_(None),
            ).limit(1)
        )
        contact = result.scalar_one_or_none()
        if contact:
            contact.contact_value = value
        else:
            self.db.add(PersonContact(person_id=person_id, contact_type=contact_type, contact_value=value, is_primary=True))

    async def _create_login(self, person: Person, data: StudentCreate) -> None:
        if self.identity_client is None:
            raise IdentityProviderError("Identity provider is not configured")

        user_id = await self.identity_client.create_login(
            email=str(data.email),
            password=data.password,
            metadata={
                "first_name": data.first_name,
                "last_name": data.last_name,
                "person_id": str(person.id),
            },
        )

        existing = (await self.db.execute(select(User.id).where(User.id == user_id))).first()
        if existing:
            logger.info("Local user %s already exists, not recreating", user_id)
            return

        self.db.add(User(id=user_id, person_id=person.id, account_status="active"))
        await self.db.flush()

        role_code = data.role_code or DEFAULT_ROLE_CODE
        role = (await self.db.execute(select(Role).where(Role.code == role_code))).scalar_one_or_none()
        if role:
            self.db.add(UserRole(user_id=user_id, role_id=role.id))
            await self.db.flush()
        else:
            logger.warning("Role '%s' not found; user %s created without a role", role_code, user_id)

    async def _create_parents(self, student: Student, data: StudentCreate) -> None:
        for parent_data in data.parents:
            parent_person = Person(
                first_name=parent_data.first_name,
                last_name=parent_data.last_name,
                gender={"father": "male", "mother": "female"}.get(parent_data.relation),
                display_name=f"{parent_data.first_name} {parent_data.last_name}",
            )
            self.db.add(parent_person)
            await self.db.flush()

            if parent_data.phone:
                self.db.add(PersonContact(
                    person_id=parent_person.id, contact_type="phone",
                    contact_value=parent_data.phone, is_primary=True
                ))

            parent = Parent(person_id=parent_person.id, occupation=parent_data.occupation)
            self.db.add(parent)
            await self.db.flush()

            self.db.add(StudentParent(
                student_id=student.id,
                parent_id=parent.id,
                relationship_type=parent_data.relation,
                is_primary_contact=parent_data.is_primary,
                is_legal_guardian=parent_data.is_guardian,
            ))
        await self.db.flush()
