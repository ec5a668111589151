"""
Inline image endpoints.

Images stored here live in the record store as data URIs instead of the
object store. GET is public so the returned URL works in an <img> tag.
"""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import AuthenticatedUser, get_current_user
from app.config import settings
from app.database import get_db
from app.errors import ObjectNotFound, ValidationFailure
from app.schemas.image import ImageDataResponse, ImageUploadResponse
from app.services.image_service import ImageService
from app.storage.errors import InvalidUploadError
from app.storage.types import FileUpload

router = APIRouter()


@router.post("", response_model=ImageUploadResponse)
async def upload_image(
    image: Optional[UploadFile] = File(None),
    path_prefix: Optional[str] = Form(None, alias="pathPrefix"),
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user)
):
    """Store an image inline and return its stable /api/images/{id} URL."""
    if image is None:
        raise ValidationFailure("No image file provided")

    # One byte over the limit is enough to reject
    data = await image.read(settings.max_file_size + 1)
    upload = FileUpload(
        filename=image.filename or "image",
        content_type=image.content_type or "",
        data=data,
    )

    try:
        record = await ImageService.store_image(
            db,
            current_user.uid,
            upload,
            max_file_size=settings.max_file_size,
            path_prefix=path_prefix,
        )
    except InvalidUploadError as e:
        raise ValidationFailure(e.message) from e

    return ImageUploadResponse(
        url=f"/api/images/{record.id}",
        filename=record.filename,
        size=record.size,
        mimetype=record.mimetype,
        id=record.id,
    )


@router.get("/{image_id}", response_model=ImageDataResponse)
async def get_image(
    image_id: str,
    db: AsyncSession = Depends(get_db)
):
    """Return the image as {data, filename, mimetype, size}."""
    record = await ImageService.get_image(db, image_id)
    if record is None:
        raise ObjectNotFound("Image not found")
    return record
