# campusdesk/services/enrollment_service.py
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Set
from uuid import UUID
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .base_service import BaseService
from .roll_number_service import RollNumberRecalculator, RecalculationOutcome
from ..core.exceptions import ConstraintViolation, NotFoundError, ValidationError
from ..models.academics import AcademicYear, ClassSection
from ..models.enrollment import Enrollment, EnrollmentStatus, RollScope
from ..models.student import Student

logger = logging.getLogger(__name__)

STATUSES = {status.value for status in EnrollmentStatus}


class EnrollmentService(BaseService[Enrollment]):
    """Writes enrollments and tracks which roll numbering scopes they dirty.

    Roll numbers are never computed here. Scopes touched by a mutation are
    handed to the recalculator only after the mutation's own transaction has
    committed, so a failed recalculation cannot undo the enrollment write.
    """

    def __init__(self, db: AsyncSession, recalculator: Optional[RollNumberRecalculator] = None):
        super().__init__(Enrollment, db)
        self.recalculator = recalculator
        self.recalculation_outcomes: List[RecalculationOutcome] = []
        self._dirty_scopes: Set[RollScope] = set()

    @property
    def dirty_scopes(self) -> Set[RollScope]:
        return set(self._dirty_scopes)

    @property
    def roll_numbers_recalculated(self) -> bool:
        return all(outcome.succeeded for outcome in self.recalculation_outcomes)

    def mark_dirty(self, *scopes: RollScope) -> None:
        self._dirty_scopes.update(scopes)

    def discard_dirty_scopes(self) -> None:
        self._dirty_scopes.clear()

    async def get_by_student(self, student_id: UUID) -> List[Enrollment]:
        """Enrollment history for a student, newest first"""
        stmt = select(self.model).where(
            self.model.student_id == student_id,
            self.model.deleted_at.is_(None)
        ).order_by(self.model.start_date.desc())
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def get_active_enrollment(self, student_id: UUID, academic_year_id: Optional[UUID] = None) -> Optional[Enrollment]:
        stmt = select(self.model).where(
            self.model.student_id == student_id,
            self.model.status == EnrollmentStatus.ACTIVE.value,
            self.model.deleted_at.is_(None)
        )
        if academic_year_id:
            stmt = stmt.where(self.model.academic_year_id == academic_year_id)
        result = await self.db.execute(stmt.order_by(self.model.start_date.desc()).limit(1))
        return result.scalar_one_or_none()

    async def list_enrollments(
        self,
        page: int = 1,
        size: int = 20,
        student_id: Optional[UUID] = None,
        class_section_id: Optional[UUID] = None,
        academic_year_id: Optional[UUID] = None,
        status: Optional[str] = None
    ) -> dict:
        """Get paginated enrollments"""
        return await self.get_paginated(
            page=page,
            size=size,
            order_by="start_date",
            sort="desc",
            student_id=student_id,
            class_section_id=class_section_id,
            academic_year_id=academic_year_id,
            status=status
        )

    async def add_enrollment(
        self,
        student_id: UUID,
        class_section_id: UUID,
        academic_year_id: UUID,
        start_date: date,
        created_by: Optional[UUID] = None,
    ) -> Enrollment:
        """Validate and stage a new active enrollment in the current transaction without committing."""
        await self._require_student(student_id)
        await self._require_scope(class_section_id, academic_year_id)
        await self._ensure_no_active_enrollment(student_id, academic_year_id)

        enrollment = Enrollment(
            student_id=student_id,
            class_section_id=class_section_id,
            academic_year_id=academic_year_id,
            start_date=start_date,
            status=EnrollmentStatus.ACTIVE.value,
            created_by=created_by,
        )
        self.db.add(enrollment)
        await self.db.flush()
        self.mark_dirty(enrollment.scope)
        return enrollment

    async def create_enrollment(
        self,
        student_id: UUID,
        class_section_id: UUID,
        academic_year_id: UUID,
        start_date: date,
        created_by: Optional[UUID] = None,
    ) -> Enrollment:
        """Enroll a student; roll numbers of the scope are recalculated after commit."""
        enrollment = await self.add_enrollment(
            student_id, class_section_id, academic_year_id, start_date, created_by
        )
        await self.commit_and_recalculate()
        await self.db.refresh(enrollment)
        return enrollment

    async def update_enrollment(self, enrollment_id: UUID, changes: Dict[str, Any]) -> Enrollment:
        """Partial update of status, end_date and class_section_id.

        Missing keys leave a field unchanged. ``None`` leaves status and
        class_section_id unchanged but clears end_date.
        """
        enrollment = await self.get(enrollment_id)
        if not enrollment:
            raise NotFoundError("Enrollment", enrollment_id)

        old_scope = enrollment.scope
        was_counted = enrollment.is_counted

        new_status = changes.get("status")
        if new_status is not None and new_status not in STATUSES:
            raise ValidationError(
                f"Unknown enrollment status '{new_status}'. Expected one of: {', '.join(sorted(STATUSES))}",
                field="status"
            )

        end_date = changes.get("end_date")
        if end_date is not None and end_date < enrollment.start_date:
            raise ValidationError("end_date cannot be before start_date", field="end_date")

        new_class_section_id = changes.get("class_section_id")
        transferred = new_class_section_id is not None and new_class_section_id != enrollment.class_section_id
        if transferred:
            await self._require_scope(new_class_section_id, enrollment.academic_year_id)

        reactivated = new_status == EnrollmentStatus.ACTIVE.value and not was_counted
        if reactivated:
            await self._ensure_no_active_enrollment(
                enrollment.student_id, enrollment.academic_year_id, exclude_id=enrollment.id
            )

        if new_status is not None:
            enrollment.status = new_status
        if "end_date" in changes:
            enrollment.end_date = end_date
        if transferred:
            enrollment.class_section_id = new_class_section_id

        if transferred or reactivated:
            # A number from another scope, or from before a withdrawal, must not
            # collide with the numbers already handed out where it lands.
            enrollment.roll_number = None

        if transferred:
            self.mark_dirty(old_scope, enrollment.scope)
        if was_counted and not enrollment.is_counted:
            self.mark_dirty(old_scope)
        if reactivated:
            self.mark_dirty(enrollment.scope)

        await self.commit_and_recalculate()
        await self.db.refresh(enrollment)
        return enrollment

    async def delete_enrollment(self, enrollment_id: UUID) -> Enrollment:
        """Soft delete; an active enrollment leaves its scope's numbering."""
        enrollment = await self.get(enrollment_id)
        if not enrollment:
            raise NotFoundError("Enrollment", enrollment_id)

        if enrollment.is_counted:
            self.mark_dirty(enrollment.scope)
        enrollment.deleted_at = datetime.now(timezone.utc)

        await self.commit_and_recalculate()
        return enrollment

    async def commit_and_recalculate(self) -> List[RecalculationOutcome]:
        """Commit the pending writes, then recalculate every dirty scope."""
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            self.discard_dirty_scopes()
            logger.error("Enrollment write rejected by the store: %s", e.orig)
            raise ConstraintViolation("Enrollment conflicts with an existing record") from e

        return await self.run_post_commit()

    async def run_post_commit(self) -> List[RecalculationOutcome]:
        """Hand the dirty scopes to the recalculator. Failures are logged and kept in ``recalculation_outcomes``."""
        scopes, self._dirty_scopes = sorted(self._dirty_scopes), set()
        if not scopes:
            self.recalculation_outcomes = []
            return self.recalculation_outcomes

        if self.recalculator is None:
            logger.warning("No roll number recalculator configured; %d scope(s) left stale", len(scopes))
            self.recalculation_outcomes = []
            return self.recalculation_outcomes

        outcomes = []
        for scope in scopes:
            outcomes.append(await self.recalculator.recalculate_quietly(*scope))
        self.recalculation_outcomes = outcomes
        return outcomes

    async def _require_student(self, student_id: UUID) -> Student:
        result = await self.db.execute(
            select(Student).where(Student.id == student_id, Student.deleted_at.is_(None))
        )
        student = result.scalar_one_or_none()
        if not student:
            raise ValidationError(f"Student {student_id} does not exist", field="student_id")
        return student

    async def _require_scope(self, class_section_id: UUID, academic_year_id: UUID) -> ClassSection:
        year = (await self.db.execute(
            select(AcademicYear).where(AcademicYear.id == academic_year_id, AcademicYear.deleted_at.is_(None))
        )).scalar_one_or_none()
        if not year:
            raise ValidationError(f"Academic year {academic_year_id} does not exist", field="academic_year_id")

        class_section = (await self.db.execute(
            select(ClassSection).where(ClassSection.id == class_section_id, ClassSection.deleted_at.is_(None))
        )).scalar_one_or_none()
        if not class_section:
            raise ValidationError(f"Class section {class_section_id} does not exist", field="class_section_id")

        if class_section.academic_year_id != academic_year_id:
            raise ValidationError(
                "Class section belongs to a different academic year",
                field="class_section_id"
            )
        return class_section

    async def _ensure_no_active_enrollment(
        self, student_id: UUID, academic_year_id: UUID, exclude_id: Optional[UUID] = None
    ) -> None:
        stmt = select(self.model.id).where(
            self.model.student_id == student_id,
            self.model.academic_year_id == academic_year_id,
            self.model.status == EnrollmentStatus.ACTIVE.value,
            self.model.deleted_at.is_(None)
        )
        if exclude_id:
            stmt = stmt.where(self.model.id != exclude_id)
        if (await self.db.execute(stmt.limit(1))).first():
            raise ValidationError(
                "Student already has an active enrollment for this academic year",
                field="student_id"
            )
