"""
Value types shared by the storage backends.
"""
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional
from urllib.parse import quote, unquote

# Metadata header prefix understood by every S3-compatible store
META_PREFIX = "x-amz-meta-"


@dataclass
class FileUpload:
    """A file handed to the storage layer by the application."""
    filename: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class ObjectMetadata:
    """
    Metadata attached to an object at upload time.

    owner_id is the authoritative ownership signal: every later mutating
    operation compares it against the authenticated caller.
    """
    owner_id: Optional[str] = None
    upload_type: Optional[str] = None
    original_name: Optional[str] = None
    content_type: Optional[str] = None
    size: Optional[int] = None
    timestamp: Optional[str] = None

    def to_meta_fields(self) -> Dict[str, str]:
        """Render as x-amz-meta-* fields (values URL-quoted to stay ASCII)."""
        fields = {
            "user-id": self.owner_id,
            "upload-type": self.upload_type,
            "original-name": self.original_name,
            "timestamp": self.timestamp,
        }
        return {
            f"{META_PREFIX}{name}": quote(value, safe=" -_.~()")
            for name, value in fields.items()
            if value is not None
        }

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "ObjectMetadata":
        lowered = {k.lower(): v for k, v in headers.items()}

        def meta(name: str) -> Optional[str]:
            value = lowered.get(f"{META_PREFIX}{name}")
            return unquote(value) if value is not None else None

        size = lowered.get("content-length")
        return cls(
            owner_id=meta("user-id"),
            upload_type=meta("upload-type"),
            original_name=meta("original-name"),
            content_type=lowered.get("content-type"),
            size=int(size) if size and size.isdigit() else None,
            timestamp=meta("timestamp"),
        )
