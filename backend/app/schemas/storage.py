"""
Pydantic schemas for the secure upload gateway endpoints.

Field names on the wire are camelCase to match the web client. Every
request field is optional here so missing values reach the gateway and
are rejected with a specific reason instead of a generic 422.
"""
from pydantic import BaseModel, Field
from typing import Dict, Optional


class PresignedUrlRequest(BaseModel):
    """Request for a presigned POST policy."""
    file_name: Optional[str] = Field(None, alias="fileName", description="Original filename, including extension")
    content_type: Optional[str] = Field(None, alias="contentType", description="Declared MIME type")
    user_id: Optional[str] = Field(None, alias="userId", description="Must equal the authenticated caller")
    upload_type: Optional[str] = Field(None, alias="uploadType", description="memories or profile_pictures")

    class Config:
        populate_by_name = True


class PresignedUrlResponse(BaseModel):
    """Form action URL, form fields and the URL the object will be served from."""
    url: str
    fields: Dict[str, str]
    public_url: str = Field(..., alias="publicUrl")

    class Config:
        populate_by_name = True


class DeleteRequest(BaseModel):
    """Request to delete one object owned by the caller."""
    file_path: Optional[str] = Field(None, alias="filePath", description="Object key or path, optionally prefixed by the bucket")
    user_id: Optional[str] = Field(None, alias="userId", description="Must equal the authenticated caller")

    class Config:
        populate_by_name = True


class DeleteResponse(BaseModel):
    success: bool = True
