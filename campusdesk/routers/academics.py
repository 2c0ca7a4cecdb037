# campusdesk/routers/academics.py
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.security import CallerIdentity, require_permission
from ..schemas.academics_schemas import AcademicYearCreate, ClassCreate, ClassSectionCreate, SectionCreate
from ..services.academics_service import AcademicsService

router = APIRouter(prefix="/api/v1/academics", tags=["Academics"])


def _named(obj) -> dict:
    return {"id": str(obj.id), "name": obj.name, "code": obj.code}


def _academic_year(year) -> dict:
    return {
        "id": str(year.id),
        "code": year.code,
        "start_date": year.start_date.isoformat(),
        "end_date": year.end_date.isoformat(),
        "is_current": year.is_current,
    }


def _class_section(class_section) -> dict:
    return {
        "id": str(class_section.id),
        "class_id": str(class_section.class_id),
        "section_id": str(class_section.section_id),
        "academic_year_id": str(class_section.academic_year_id),
        "capacity": class_section.capacity,
    }


@router.get("/academic-years", response_model=list)
async def list_academic_years(
    db: AsyncSession = Depends(get_db),
    caller: CallerIdentity = Depends(require_permission("academics.view")),
):
    return [_academic_year(year) for year in await AcademicsService(db).list_academic_years()]


@router.post("/academic-years", status_code=201, response_model=dict)
async def create_academic_year(
    data: AcademicYearCreate,
    db: AsyncSession = Depends(get_db),
    caller: CallerIdentity = Depends(require_permission("academics.manage")),
):
    year = await AcademicsService(db).create_academic_year(data)
    return {"message": "Academic year created", "academic_year": _academic_year(year)}


@router.get("/classes", response_model=list)
async def list_classes(
    db: AsyncSession = Depends(get_db),
    caller: CallerIdentity = Depends(require_permission("academics.view")),
):
    return [_named(school_class) for school_class in await AcademicsService(db).list_classes()]


@router.post("/classes", status_code=201, response_model=dict)
async def create_class(
    data: ClassCreate,
    db: AsyncSession = Depends(get_db),
    caller: CallerIdentity = Depends(require_permission("academics.manage")),
):
    school_class = await AcademicsService(db).create_class(data)
    return {"message": "Class created", "class": _named(school_class)}


@router.get("/sections", response_model=list)
async def list_sections(
    db: AsyncSession = Depends(get_db),
    caller: CallerIdentity = Depends(require_permission("academics.view")),
):
    return [_named(section) for section in await AcademicsService(db).list_sections()]


@router.post("/sections", status_code=201, response_model=dict)
async def create_section(
    data: SectionCreate,
    db: AsyncSession = Depends(get_db),
    caller: CallerIdentity = Depends(require_permission("academics.manage")),
):
    section = await AcademicsService(db).create_section(data)
    return {"message": "Section created", "section": _named(section)}


@router.get("/class-sections", response_model=list)
async def list_class_sections(
    academic_year_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    caller: CallerIdentity = Depends(require_permission("academics.view")),
):
    class_sections = await AcademicsService(db).list_class_sections(academic_year_id)
    return [_class_section(class_section) for class_section in class_sections]


@router.post("/class-sections", status_code=201, response_model=dict)
async def create_class_section(
    data: ClassSectionCreate,
    db: AsyncSession = Depends(get_db),
    caller: CallerIdentity = Depends(require_permission("academics.manage")),
):
    class_section = await AcademicsService(db).create_class_section(data)
    return {"message": "Class-section created", "class_section": _class_section(class_section)}


@router.get("/class-sections/{class_section_id}/students", response_model=list)
async def get_class_section_students(
    class_section_id: UUID,
    db: AsyncSession = Depends(get_db),
    caller: CallerIdentity = Depends(require_permission("academics.view")),
):
    """Active students of a class-section in roll number order"""
    rows = await AcademicsService(db).get_class_section_students(class_section_id)
    return [
        {
            "id": str(row.id),
            "admission_no": row.admission_no,
            "first_name": row.first_name,
            "last_name": row.last_name,
            "display_name": row.display_name,
            "enrollment_id": str(row.enrollment_id),
            "roll_number": row.roll_number,
            "start_date": row.start_date.isoformat(),
            "end_date": row.end_date.isoformat() if row.end_date else None,
        }
        for row in rows
    ]
