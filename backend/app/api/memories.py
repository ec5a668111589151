"""
Memory endpoints.

Images attached to a memory go through SmartStorageRouter, so they land in
the object store or, when it is unavailable, in local fallback storage.
Records keep only the returned reference.
"""
import datetime as dt
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import AuthenticatedUser, get_current_user
from app.database import get_db
from app.dependencies import get_storage_router
from app.errors import AuthorizationFailure, ObjectNotFound, StorageFailure, UpstreamFailure, ValidationFailure
from app.models.memory import Memory
from app.schemas.memory import MemoryDeleteResponse, MemoryResponse
from app.services.memory_service import MemoryService
from app.storage.errors import InvalidUploadError, OwnershipError, StorageError, UploadFailedError
from app.storage.references import Backend
from app.storage.router import SmartStorageRouter
from app.storage.types import FileUpload

logger = logging.getLogger(__name__)

router = APIRouter()


async def _to_response(memory: Memory, storage: SmartStorageRouter) -> MemoryResponse:
    response = MemoryResponse.model_validate(memory)
    if memory.image_ref:
        try:
            backend = storage.parse(memory.image_ref).backend
            response.image_backend = backend.value
            response.image_is_local = backend is Backend.LOCAL
            response.image_src = await storage.get(memory.image_ref)
        except StorageError as e:
            logger.warning(
                f"Cannot resolve image for memory {memory.id}: {e.message}",
                extra={"event": "image_resolve_failed", "user_id": memory.user_id}
            )
    return response


@router.post("", response_model=MemoryResponse, status_code=status.HTTP_201_CREATED)
async def create_memory(
    title: str = Form(...),
    date: dt.date = Form(...),
    caption: Optional[str] = Form(None),
    tags: Optional[str] = Form(None, description="Comma-separated tags"),
    is_favorite: bool = Form(False, alias="isFavorite"),
    image: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
    storage: SmartStorageRouter = Depends(get_storage_router)
):
    """Create a memory, uploading its image first."""
    upload = None
    if image is not None:
        upload = FileUpload(
            filename=image.filename or "image",
            content_type=image.content_type or "",
            data=await image.read(storage.max_file_size + 1),
        )

    try:
        memory = await MemoryService.create_memory(
            db,
            storage,
            user_id=current_user.uid,
            title=title,
            date=date,
            caption=caption,
            tags=[t.strip() for t in tags.split(",") if t.strip()] if tags else [],
            is_favorite=is_favorite,
            image=upload,
        )
    except InvalidUploadError as e:
        raise ValidationFailure(e.message) from e
    except UploadFailedError as e:
        raise StorageFailure("Failed to upload image") from e

    return await _to_response(memory, storage)


@router.get("", response_model=List[MemoryResponse])
async def list_memories(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
    storage: SmartStorageRouter = Depends(get_storage_router)
):
    """List the caller's memories with displayable image sources."""
    memories = await MemoryService.list_memories(db, current_user.uid)
    return [await _to_response(memory, storage) for memory in memories]


@router.delete("/{memory_id}", response_model=MemoryDeleteResponse)
async def delete_memory(
    memory_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
    storage: SmartStorageRouter = Depends(get_storage_router)
):
    """
    Delete a memory and its image.

    If the image cannot be deleted the memory is kept and 502 is returned;
    an image owned by someone else answers 403 and keeps the memory too.
    """
    memory = await MemoryService.get_memory(db, memory_id, current_user.uid)
    if memory is None:
        raise ObjectNotFound("Memory not found")

    try:
        await MemoryService.delete_memory(db, storage, memory)
    except OwnershipError as e:
        raise AuthorizationFailure("You do not have permission to delete this image") from e
    except StorageError as e:
        raise UpstreamFailure("Failed to delete memory image; memory was kept") from e

    return MemoryDeleteResponse(success=True, id=memory_id)
