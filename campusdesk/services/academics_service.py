# campusdesk/services/academics_service.py
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .base_service import BaseService
from ..core.exceptions import ConstraintViolation, NotFoundError, ValidationError
from ..models.academics import AcademicYear, ClassSection, SchoolClass, Section
from ..models.enrollment import Enrollment, EnrollmentStatus
from ..models.person import Person
from ..models.student import Student
from ..schemas.academics_schemas import AcademicYearCreate, ClassCreate, ClassSectionCreate, SectionCreate


class AcademicsService:
    """Academic years, classes, sections and their year-scoped pairings."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.years = BaseService(AcademicYear, db)
        self.classes = BaseService(SchoolClass, db)
        self.sections = BaseService(Section, db)
        self.class_sections = BaseService(ClassSection, db)

    async def _create(self, service: BaseService, values: dict, what: str):
        try:
            return await service.create(values)
        except IntegrityError as e:
            await self.db.rollback()
            raise ConstraintViolation(f"{what} already exists") from e

    async def create_academic_year(self, data: AcademicYearCreate) -> AcademicYear:
        return await self._create(self.years, data.model_dump(), "Academic year")

    async def list_academic_years(self) -> List[AcademicYear]:
        return await self.years.get_multi(limit=500, order_by="start_date")

    async def create_class(self, data: ClassCreate) -> SchoolClass:
        return await self._create(self.classes, data.model_dump(), "Class")

    async def list_classes(self) -> List[SchoolClass]:
        return await self.classes.get_multi(limit=500, order_by="name")

    async def create_section(self, data: SectionCreate) -> Section:
        return await self._create(self.sections, data.model_dump(), "Section")

    async def list_sections(self) -> List[Section]:
        return await self.sections.get_multi(limit=500, order_by="name")

    async def create_class_section(self, data: ClassSectionCreate) -> ClassSection:
        if not await self.classes.get(data.class_id):
            raise ValidationError(f"Class {data.class_id} does not exist", field="class_id")
        if not await self.sections.get(data.section_id):
            raise ValidationError(f"Section {data.section_id} does not exist", field="section_id")
        if not await self.years.get(data.academic_year_id):
            raise ValidationError(f"Academic year {data.academic_year_id} does not exist", field="academic_year_id")
        return await self._create(self.class_sections, data.model_dump(), "Class section")

    async def list_class_sections(self, academic_year_id: Optional[UUID] = None) -> List[ClassSection]:
        return await self.class_sections.get_multi(limit=500, academic_year_id=academic_year_id)

    async def get_class_section_students(self, class_section_id: UUID) -> list:
        """Active students of a class-section, in roll number order (unnumbered rows last)"""
        class_section = await self.class_sections.get(class_section_id)
        if not class_section:
            raise NotFoundError("Class section", class_section_id)

        stmt = (
            select(
                Student.id,
                Student.admission_no,
                Person.first_name,
                Person.last_name,
                Person.display_name,
                Enrollment.id.label("enrollment_id"),
                Enrollment.roll_number,
                Enrollment.start_date,
                Enrollment.end_date,
            )
            .join(Student, Enrollment.student_id == Student.id)
            .join(Person, Student.person_id == Person.id)
            .where(
                Enrollment.class_section_id == class_section.id,
                Enrollment.academic_year_id == class_section.academic_year_id,
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
                Enrollment.deleted_at.is_(None),
                Student.deleted_at.is_(None),
            )
            .order_by(Enrollment.roll_number.is_(None), Enrollment.roll_number, Person.first_name, Person.last_name)
        )
        result = await self.db.execute(stmt)
        return result.all()
