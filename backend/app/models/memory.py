"""
Memory model: a dated photo memory.

The record holds only the storage reference string (image_ref), never the
bytes or the object metadata. Which backend holds the image is encoded in
the reference itself.
"""
from sqlalchemy import Column, String, Boolean, Date, DateTime, Text, JSON, Index
from sqlalchemy.sql import func

from app.models.base import Base, generate_uuid


class Memory(Base):
    """Photo memory owned by one user."""
    __tablename__ = "memories"

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, nullable=False)
    title = Column(String(200), nullable=False)
    caption = Column(Text, nullable=True)
    date = Column(Date, nullable=False)

    # Reference returned by SmartStorageRouter.upload (remote URL or local://)
    image_ref = Column(String, nullable=True)

    is_favorite = Column(Boolean, nullable=False, default=False)
    tags = Column(JSON, nullable=False, default=list)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )

    __table_args__ = (
        Index('ix_memories_user_date', 'user_id', 'date'),
    )

    def __repr__(self):
        return f"<Memory(id={self.id}, user={self.user_id}, date={self.date})>"
