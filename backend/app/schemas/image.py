"""
Pydantic schemas for inline image endpoints.
"""
from pydantic import BaseModel, Field


class ImageUploadResponse(BaseModel):
    """Stable URL and summary of a stored inline image."""
    url: str = Field(..., description="Relative URL: /api/images/{id}")
    filename: str
    size: int
    mimetype: str
    id: str


class ImageDataResponse(BaseModel):
    """Inline image payload as a base64 data URI."""
    data: str
    filename: str
    mimetype: str
    size: int

    class Config:
        from_attributes = True
