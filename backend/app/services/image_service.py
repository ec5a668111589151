"""
Image service for the inline image persistence mode.

Bytes are stored in the record store as a data URI next to the image's
metadata. Records are read and written only through ImageRecord.
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.models.image_record import ImageRecord
from app.storage.errors import InvalidUploadError
from app.storage.keys import next_timestamp_ms, sanitize_filename
from app.storage.local_store import to_data_uri
from app.storage.types import FileUpload
from app.storage.validation import validate_image_upload, validate_size

logger = logging.getLogger(__name__)

DEFAULT_PATH_PREFIX = "uploads"


class ImageService:
    """Service for inline image records."""

    @staticmethod
    async def store_image(
        db: AsyncSession,
        user_id: str,
        file: FileUpload,
        max_file_size: int,
        path_prefix: Optional[str] = None
    ) -> ImageRecord:
        """
        Validate and persist an image as a data URI.

        Args:
            db: Database session
            user_id: Authenticated owner
            file: Uploaded file
            max_file_size: Size ceiling in bytes
            path_prefix: Logical folder used in the generated filename

        Raises:
            InvalidUploadError: Not an allowed image type, extension does not
                match the type, empty, or too large
        """
        error = validate_image_upload(file.filename, file.content_type) or validate_size(file.size, max_file_size)
        if error:
            raise InvalidUploadError(error)

        prefix = sanitize_filename(path_prefix or DEFAULT_PATH_PREFIX)
        original_name = sanitize_filename(file.filename)
        filename = f"{prefix}/{user_id}_{next_timestamp_ms()}_{original_name}"

        record = ImageRecord(
            user_id=user_id,
            filename=filename,
            original_name=file.filename,
            mimetype=file.content_type,
            size=file.size,
            data=to_data_uri(file.data, file.content_type),
        )
        db.add(record)
        await db.commit()
        await db.refresh(record)

        logger.info(
            f"Stored inline image {record.id}",
            extra={"event": "inline_image_stored", "user_id": user_id, "size": file.size}
        )
        return record

    @staticmethod
    async def get_image(db: AsyncSession, image_id: str) -> Optional[ImageRecord]:
        result = await db.execute(
            select(ImageRecord).where(ImageRecord.id == image_id)
        )
        return result.scalar_one_or_none()
