"""
Database models package.
"""
from app.models.base import Base
from app.models.image_record import ImageRecord
from app.models.memory import Memory

__all__ = [
    "Base",
    "ImageRecord",
    "Memory",
]
