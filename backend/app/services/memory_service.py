"""
Memory service for business logic around photo memories.
Handles creation with image upload, listing, and ordered deletion.
"""
import datetime as dt
import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.models.memory import Memory
from app.storage.router import SmartStorageRouter
from app.storage.types import FileUpload
from app.storage.validation import UploadType

logger = logging.getLogger(__name__)


class MemoryService:
    """Service for memory business logic."""

    @staticmethod
    async def create_memory(
        db: AsyncSession,
        storage: SmartStorageRouter,
        user_id: str,
        title: str,
        date: dt.date,
        caption: Optional[str] = None,
        tags: Optional[List[str]] = None,
        is_favorite: bool = False,
        image: Optional[FileUpload] = None
    ) -> Memory:
        """
        Create a memory, uploading its image first.

        The record stores only the reference returned by the router.

        Raises:
            InvalidUploadError: Image rejected before upload
            UploadFailedError: Neither storage backend accepted the image
        """
        image_ref = None
        if image is not None:
            image_ref = await storage.upload(image, UploadType.MEMORIES.value, user_id)

        memory = Memory(
            user_id=user_id,
            title=title,
            caption=caption,
            date=date,
            image_ref=image_ref,
            tags=tags or [],
            is_favorite=is_favorite,
        )
        db.add(memory)
        await db.commit()
        await db.refresh(memory)
        return memory

    @staticmethod
    async def list_memories(db: AsyncSession, user_id: str) -> List[Memory]:
        """Memories of one owner, newest first."""
        result = await db.execute(
            select(Memory)
            .where(Memory.user_id == user_id)
            .order_by(Memory.created_at.desc(), Memory.date.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_memory(db: AsyncSession, memory_id: str, user_id: str) -> Optional[Memory]:
        """Fetch a memory only if it belongs to user_id."""
        result = await db.execute(
            select(Memory).where(Memory.id == memory_id, Memory.user_id == user_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def delete_memory(db: AsyncSession, storage: SmartStorageRouter, memory: Memory) -> None:
        """
        Delete a memory and its image.

        The blob goes first and only if its stored owner is the memory's
        owner. If the storage layer raises, the record is kept so it can be
        deleted again later; a record is never left pointing at nothing it
        cannot clean up.
        """
        if memory.image_ref:
            await storage.remove(memory.image_ref, memory.user_id)

        await db.delete(memory)
        await db.commit()
        logger.info(
            f"Deleted memory {memory.id}",
            extra={"event": "memory_deleted", "user_id": memory.user_id}
        )
