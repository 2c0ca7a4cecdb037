from . import health, academics, enrollments, students

__all__ = [
    "health",
    "academics",
    "enrollments",
    "students",
]
