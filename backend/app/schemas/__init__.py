"""
Pydantic schemas for API request/response validation.
"""
from app.schemas.storage import (
    PresignedUrlRequest,
    PresignedUrlResponse,
    DeleteRequest,
    DeleteResponse,
)
from app.schemas.image import (
    ImageUploadResponse,
    ImageDataResponse,
)
from app.schemas.memory import (
    MemoryResponse,
    MemoryDeleteResponse,
)

__all__ = [
    "PresignedUrlRequest",
    "PresignedUrlResponse",
    "DeleteRequest",
    "DeleteResponse",
    "ImageUploadResponse",
    "ImageDataResponse",
    "MemoryResponse",
    "MemoryDeleteResponse",
]
