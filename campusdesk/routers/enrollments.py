# campusdesk/routers/enrollments.py
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import get_roll_number_recalculator
from ..core.exceptions import NotFoundError
from ..core.security import CallerIdentity, require_permission
from ..models.enrollment import Enrollment
from ..schemas.enrollment_schemas import EnrollmentCreate, EnrollmentUpdate, RecalculateRequest
from ..services.enrollment_service import EnrollmentService
from ..services.roll_number_service import RollNumberRecalculator

router = APIRouter(prefix="/api/v1/enrollments", tags=["Enrollments"])


def format_enrollment(enrollment: Enrollment) -> dict:
    return {
        "id": str(enrollment.id),
        "student_id": str(enrollment.student_id),
        "class_section_id": str(enrollment.class_section_id),
        "academic_year_id": str(enrollment.academic_year_id),
        "status": enrollment.status,
        "roll_number": enrollment.roll_number,
        "start_date": enrollment.start_date.isoformat(),
        "end_date": enrollment.end_date.isoformat() if enrollment.end_date else None,
        "created_at": enrollment.created_at.isoformat() if enrollment.created_at else None,
    }


@router.get("/", response_model=dict)
async def get_enrollments(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    student_id: Optional[UUID] = Query(None),
    class_section_id: Optional[UUID] = Query(None),
    academic_year_id: Optional[UUID] = Query(None),
    status: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    caller: CallerIdentity = Depends(require_permission("academics.view")),
):
    """Get paginated enrollments with filtering"""
    service = EnrollmentService(db)
    result = await service.list_enrollments(
        page=page,
        size=size,
        student_id=student_id,
        class_section_id=class_section_id,
        academic_year_id=academic_year_id,
        status=status
    )

    return {
        **result,
        "items": [format_enrollment(enrollment) for enrollment in result["items"]],
    }


@router.post("/", status_code=201, response_model=dict)
async def create_enrollment(
    enrollment_data: EnrollmentCreate,
    db: AsyncSession = Depends(get_db),
    recalculator: RollNumberRecalculator = Depends(get_roll_number_recalculator),
    caller: CallerIdentity = Depends(require_permission("academics.manage")),
):
    """Enroll a student in a class-section"""
    service = EnrollmentService(db, recalculator)
    enrollment = await service.create_enrollment(
        student_id=enrollment_data.student_id,
        class_section_id=enrollment_data.class_section_id,
        academic_year_id=enrollment_data.academic_year_id,
        start_date=enrollment_data.start_date,
        created_by=caller.user_id,
    )

    return {
        "message": "Student enrolled successfully",
        "enrollment": format_enrollment(enrollment),
        "roll_numbers_recalculated": service.roll_numbers_recalculated,
    }


@router.post("/recalculate", response_model=dict)
async def recalculate_roll_numbers(
    request: RecalculateRequest,
    recalculator: RollNumberRecalculator = Depends(get_roll_number_recalculator),
    caller: CallerIdentity = Depends(require_permission("academics.manage")),
):
    """Recalculate roll numbers for one class-section and academic year"""
    summary = await recalculator.recalculate(request.class_section_id, request.academic_year_id)
    return {
        "message": "Roll numbers recalculated successfully",
        "class_section_id": str(request.class_section_id),
        "academic_year_id": str(request.academic_year_id),
        "active_count": summary.active_count,
        "renumbered": summary.renumbered,
    }


@router.get("/{enrollment_id}", response_model=dict)
async def get_enrollment(
    enrollment_id: UUID,
    db: AsyncSession = Depends(get_db),
    caller: CallerIdentity = Depends(require_permission("academics.view")),
):
    """Get specific enrollment details"""
    enrollment = await EnrollmentService(db).get(enrollment_id)
    if not enrollment:
        raise NotFoundError("Enrollment", enrollment_id)
    return format_enrollment(enrollment)


@router.put("/{enrollment_id}", response_model=dict)
async def update_enrollment(
    enrollment_id: UUID,
    enrollment_data: EnrollmentUpdate,
    db: AsyncSession = Depends(get_db),
    recalculator: RollNumberRecalculator = Depends(get_roll_number_recalculator),
    caller: CallerIdentity = Depends(require_permission("academics.manage")),
):
    """Update enrollment (transfer, withdraw, close)"""
    service = EnrollmentService(db, recalculator)
    enrollment = await service.update_enrollment(enrollment_id, enrollment_data.model_dump(exclude_unset=True))

    return {
        "message": "Enrollment updated",
        "enrollment": format_enrollment(enrollment),
        "roll_numbers_recalculated": service.roll_numbers_recalculated,
    }


@router.delete("/{enrollment_id}", response_model=dict)
async def delete_enrollment(
    enrollment_id: UUID,
    db: AsyncSession = Depends(get_db),
    recalculator: RollNumberRecalculator = Depends(get_roll_number_recalculator),
    caller: CallerIdentity = Depends(require_permission("academics.manage")),
):
    """Soft delete enrollment"""
    service = EnrollmentService(db, recalculator)
    await service.delete_enrollment(enrollment_id)
    return {
        "message": "Enrollment removed successfully",
        "roll_numbers_recalculated": service.roll_numbers_recalculated,
    }
