"""
Upload validation shared by the upload gateway and the storage router.

Only images are accepted. The declared MIME type must be in the allow-list
and the filename extension must be one of the extensions registered for
that MIME type, so a .png cannot be uploaded as image/gif.
"""
import enum
import os
from typing import Optional


class UploadType(str, enum.Enum):
    """Category of an upload, also the first segment of its object key."""
    MEMORIES = "memories"
    PROFILE_PICTURES = "profile_pictures"


# Allowed image MIME types and the extensions each one may carry
VALID_EXTENSIONS = {
    'image/jpeg': ['.jpg', '.jpeg'],
    'image/png': ['.png'],
    'image/gif': ['.gif'],
    'image/webp': ['.webp'],
    'image/heic': ['.heic'],
    'image/heif': ['.heif'],
}

ALLOWED_CONTENT_TYPES = list(VALID_EXTENSIONS)


def parse_upload_type(value: Optional[str]) -> Optional[UploadType]:
    """Return the UploadType for a raw value, or None if unknown."""
    try:
        return UploadType((value or "").lower())
    except ValueError:
        return None


def validate_content_type(content_type: Optional[str]) -> Optional[str]:
    """Return an error message if the MIME type is not an allowed image type."""
    if not content_type:
        return "Missing contentType"
    if content_type.lower() not in VALID_EXTENSIONS:
        return "Invalid content type. Only images are allowed."
    return None


def validate_image_upload(file_name: Optional[str], content_type: Optional[str]) -> Optional[str]:
    """
    Cross-check filename extension against the declared MIME type.

    Returns:
        None if valid, otherwise the reason the upload is rejected
    """
    if not file_name or not content_type:
        return "Missing fileName or contentType"

    error = validate_content_type(content_type)
    if error:
        return error

    extension = os.path.splitext(file_name)[1].lower()
    if extension not in VALID_EXTENSIONS[content_type.lower()]:
        return "File extension doesn't match content type"

    return None


def validate_size(size: Optional[int], max_size: int) -> Optional[str]:
    if size is None:
        return None
    if size <= 0:
        return "File is empty"
    if size > max_size:
        return f"File size exceeds {max_size // (1024 * 1024)}MB limit"
    return None
