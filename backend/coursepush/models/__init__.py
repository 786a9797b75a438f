"""SQLAlchemy ORM models"""
from coursepush.models.student_device import StudentDevice

__all__ = [
    "StudentDevice",
]
