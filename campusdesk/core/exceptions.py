# campusdesk/core/exceptions.py
"""Custom exceptions for the CampusDesk application."""
from fastapi import HTTPException
from typing import Any, Dict, Optional
from uuid import UUID


class CampusDeskException(HTTPException):
    """Base exception for CampusDesk application."""
    def __init__(
        self,
        status_code: int,
        detail: Any,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)

    @property
    def message(self) -> str:
        if isinstance(self.detail, dict):
            return self.detail.get("message", "")
        return str(self.detail)

    def __str__(self) -> str:
        return f"{type(self).__name__}: {self.message}"


class NotFoundError(CampusDeskException):
    """Raised when an addressed resource does not exist."""
    def __init__(self, resource: str, id: Any = None):
        message = f"{resource} not found"
        if id is not None:
            message += f" with id: {id}"
        super().__init__(
            status_code=404,
            detail={"error": "Not Found", "message": message}
        )


class ValidationError(CampusDeskException):
    """Exception raised for validation errors."""
    def __init__(self, message: str, field: Optional[str] = None):
        detail = {"error": "Validation Error", "message": message}
        if field:
            detail["field"] = field
        super().__init__(status_code=422, detail=detail)
        self.field = field


class ConstraintViolation(CampusDeskException):
    """The store rejected a write because of a uniqueness or foreign key constraint."""
    def __init__(self, message: str, constraint: Optional[str] = None):
        detail = {"error": "Constraint Violation", "message": message}
        if constraint:
            detail["constraint"] = constraint
        super().__init__(status_code=409, detail=detail)


class RecalculationError(CampusDeskException):
    """Roll numbers of a scope could not be recalculated."""
    def __init__(self, message: str, class_section_id: Optional[UUID] = None, academic_year_id: Optional[UUID] = None):
        detail = {"error": "Recalculation Failed", "message": message}
        # Whole-store failures have no scope
        if class_section_id is not None:
            detail["class_section_id"] = str(class_section_id)
        if academic_year_id is not None:
            detail["academic_year_id"] = str(academic_year_id)
        super().__init__(status_code=500, detail=detail)
        self.class_section_id = class_section_id
        self.academic_year_id = academic_year_id


class StudentCreationError(CampusDeskException):
    """A sub-step of the composite student creation failed; the whole creation was rolled back."""
    def __init__(self, step: str, message: str):
        super().__init__(
            status_code=500,
            detail={
                "error": "Failed to create student",
                "step": step,
                "message": message,
            }
        )
        self.step = step


class IdentityProviderError(CampusDeskException):
    """The external identity provider rejected or failed a request."""
    def __init__(self, message: str):
        super().__init__(
            status_code=502,
            detail={"error": "Identity Provider Error", "message": message}
        )


class AuthenticationError(CampusDeskException):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            status_code=401,
            detail={"error": "Unauthorized", "message": message},
            headers={"WWW-Authenticate": "Bearer"},
        )


class PermissionDenied(CampusDeskException):
    def __init__(self, message: str = "Permission denied"):
        super().__init__(
            status_code=403,
            detail={"error": "Forbidden", "message": message}
        )
