"""
ImageRecord model for images stored inline in the record store.

An alternative persistence mode: the bytes live next to the metadata as a
base64 data URI instead of in the object store. This is the one schema for
inline images; every reader and writer goes through it.
"""
from sqlalchemy import Column, String, Integer, Text, DateTime
from sqlalchemy.sql import func

from app.models.base import Base, generate_uuid


class ImageRecord(Base):
    """
    Inline image model.

    Attributes:
        id: Unique identifier (UUID), used in /api/images/{id}
        user_id: Owner id (indexed)
        filename: Generated name {pathPrefix}/{userId}_{timestamp}_{originalName}
        original_name: Client-supplied filename
        mimetype: MIME type
        size: Size in bytes of the decoded image
        data: data:<mime>;base64,<payload>
        created_at: Upload time
    """
    __tablename__ = "image_records"

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, nullable=False, index=True)
    filename = Column(String, nullable=False)
    original_name = Column(String, nullable=True)
    mimetype = Column(String, nullable=False)
    size = Column(Integer, nullable=False)
    data = Column(Text, nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    def __repr__(self):
        return f"<ImageRecord(id={self.id}, user={self.user_id}, size={self.size})>"
