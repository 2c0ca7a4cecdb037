"""Import all models here, needed for Alembic migration and metadata.create_all."""
from .base import Base

from .person import Person, PersonContact
from .academics import AcademicYear, SchoolClass, Section, ClassSection
from .student import Student, Parent, StudentParent
from .enrollment import Enrollment, EnrollmentStatus, RollScope
from .user import User, Role, Permission, UserRole, RolePermission

__all__ = [
    "Base",
    "Person",
    "PersonContact",
    "AcademicYear",
    "SchoolClass",
    "Section",
    "ClassSection",
    "Student",
    "Parent",
    "StudentParent",
    "Enrollment",
    "EnrollmentStatus",
    "RollScope",
    "User",
    "Role",
    "Permission",
    "UserRole",
    "RolePermission",
]
