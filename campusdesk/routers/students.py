# campusdesk/routers/students.py
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from .enrollments import format_enrollment
from ..core.database import get_db
from ..core.dependencies import get_identity_client, get_roll_number_recalculator
from ..core.exceptions import NotFoundError
from ..core.security import CallerIdentity, require_permission
from ..schemas.enrollment_schemas import RecalculateByClassRequest
from ..schemas.student_schemas import StudentCreate, StudentUpdate
from ..services.enrollment_service import EnrollmentService
from ..services.identity_service import IdentityProviderClient
from ..services.roll_number_service import RollNumberRecalculator
from ..services.student_service import StudentService

router = APIRouter(prefix="/api/v1/students", tags=["Students"])


def format_student(student) -> dict:
    person = student.person
    return {
        "id": str(student.id),
        "admission_no": student.admission_no,
        "admission_date": student.admission_date.isoformat(),
        "status": student.status,
        "first_name": person.first_name,
        "middle_name": person.middle_name,
        "last_name": person.last_name,
        "display_name": person.display_name,
        "dob": person.dob.isoformat() if person.dob else None,
        "gender": person.gender,
    }


@router.get("/", response_model=dict)
async def get_students(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, description="Matches display name or admission number"),
    db: AsyncSession = Depends(get_db),
    caller: CallerIdentity = Depends(require_permission("students.view")),
):
    """Get paginated students with their current roll number"""
    result = await StudentService(db).list_students(page=page, size=size, search=search)

    return {
        **result,
        "items": [
            {
                **format_student(item["student"]),
                "email": item["email"],
                "phone": item["phone"],
                "current_enrollment": format_enrollment(item["current_enrollment"]) if item["current_enrollment"] else None,
            }
            for item in result["items"]
        ],
    }


@router.post("/", status_code=201, response_model=dict)
async def create_student(
    student_data: StudentCreate,
    db: AsyncSession = Depends(get_db),
    recalculator: RollNumberRecalculator = Depends(get_roll_number_recalculator),
    identity_client: IdentityProviderClient = Depends(get_identity_client),
    caller: CallerIdentity = Depends(require_permission("students.create")),
):
    """Create a student with optional login, parents and initial enrollment"""
    service = StudentService(db, recalculator, identity_client)
    student = await service.create_student_with_enrollment(student_data, created_by=caller.user_id)

    return {
        "message": "Student created successfully",
        "student": {
            "id": str(student.id),
            "person_id": str(student.person_id),
            "admission_no": student.admission_no,
            "admission_date": student.admission_date.isoformat(),
            "status": student.status,
        },
        "roll_numbers_recalculated": service.enrollments.roll_numbers_recalculated,
    }


@router.post("/recalculate-rolls", response_model=dict)
async def recalculate_rolls(
    request: RecalculateByClassRequest,
    db: AsyncSession = Depends(get_db),
    recalculator: RollNumberRecalculator = Depends(get_roll_number_recalculator),
    caller: CallerIdentity = Depends(require_permission("students.create")),
):
    """Manually trigger roll number recalculation for a class, section and year"""
    class_section = await StudentService(db).resolve_class_section(
        request.class_id, request.section_id, request.academic_year_id
    )
    if not class_section:
        raise NotFoundError("Class section")

    summary = await recalculator.recalculate(class_section.id, request.academic_year_id)
    return {
        "message": "Roll numbers recalculated successfully",
        "class_section_id": str(class_section.id),
        "active_count": summary.active_count,
        "renumbered": summary.renumbered,
    }


@router.get("/{student_id}", response_model=dict)
async def get_student(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    caller: CallerIdentity = Depends(require_permission("students.view")),
):
    """Student with their current enrollment and roll number"""
    student = await StudentService(db).get_with_person(student_id)
    if not student:
        raise NotFoundError("Student", student_id)

    current = await EnrollmentService(db).get_active_enrollment(student.id)
    return {
        **format_student(student),
        "current_enrollment": format_enrollment(current) if current else None,
    }


@router.get("/{student_id}/enrollments", response_model=list)
async def get_student_enrollments(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    caller: CallerIdentity = Depends(require_permission("students.view")),
):
    """Enrollment history for a student"""
    enrollments = await EnrollmentService(db).get_by_student(student_id)
    return [format_enrollment(enrollment) for enrollment in enrollments]


@router.put("/{student_id}", response_model=dict)
async def update_student(
    student_id: UUID,
    student_data: StudentUpdate,
    db: AsyncSession = Depends(get_db),
    recalculator: RollNumberRecalculator = Depends(get_roll_number_recalculator),
    caller: CallerIdentity = Depends(require_permission("students.edit")),
):
    """Update student details; a name change renumbers the student's class-sections"""
    service = StudentService(db, recalculator)
    student = await service.update_student(student_id, student_data)

    return {
        "message": "Student updated successfully",
        "student": format_student(student),
        "roll_numbers_recalculated": service.enrollments.roll_numbers_recalculated,
    }


@router.delete("/{student_id}", response_model=dict)
async def delete_student(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    recalculator: RollNumberRecalculator = Depends(get_roll_number_recalculator),
    caller: CallerIdentity = Depends(require_permission("students.delete")),
):
    """Soft delete a student"""
    service = StudentService(db, recalculator)
    student = await service.delete_student(student_id)

    return {
        "message": "Student deleted successfully",
        "id": str(student.id),
        "roll_numbers_recalculated": service.enrollments.roll_numbers_recalculated,
    }
