from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
import logging

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE codes
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"


def integrity_error_code(exc: IntegrityError):
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code:
        return code
    # SQLite reports constraint kinds only in the message
    text = str(orig).upper()
    if "FOREIGN KEY" in text:
        return FOREIGN_KEY_VIOLATION
    return UNIQUE_VIOLATION


async def integrity_exception_handler(request: Request, exc: IntegrityError):
    """Turn store-level constraint errors that escaped a service into client errors"""
    logger.error("Integrity error: %s - Path: %s", exc.orig, request.url.path)
    if integrity_error_code(exc) == FOREIGN_KEY_VIOLATION:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid Reference", "message": "Referenced record does not exist"}
        )
    return JSONResponse(
        status_code=409,
        content={"error": "Duplicate Entry", "message": "A record with this value already exists"}
    )


async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.exception("Unexpected error: %s - Path: %s", exc, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "type": "InternalError"}
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(IntegrityError, integrity_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
