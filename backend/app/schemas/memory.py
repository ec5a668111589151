"""
Pydantic schemas for memory endpoints.
"""
from pydantic import BaseModel, Field
from typing import List, Optional
import datetime as dt


class MemoryResponse(BaseModel):
    """
    Memory as returned to the client.

    image_ref is the stored reference; image_src is what the client should
    put in an <img>: the remote URL unchanged, or a data URI for images
    kept in local fallback storage. image_is_local lets the client warn
    that such an image is not backed up.
    """
    id: str
    user_id: str
    title: str
    caption: Optional[str] = None
    date: dt.date
    image_ref: Optional[str] = None
    image_src: Optional[str] = Field(None, description="Displayable URL or data URI")
    image_backend: Optional[str] = Field(None, description="remote or local")
    image_is_local: bool = Field(
        False,
        description="Image is only in this server's fallback storage and may be lost"
    )
    is_favorite: bool = False
    tags: List[str] = []
    created_at: dt.datetime

    class Config:
        from_attributes = True


class MemoryDeleteResponse(BaseModel):
    success: bool = True
    id: str
