"""
Object key naming.

Pattern: {upload_type}/{owner_id}/{timestamp_ms}_{random}_{sanitized_name}

This structure:
- Groups objects by upload type, then by owner
- Keeps the owner id in the path as a second ownership signal
  (the authoritative one is the object's stored metadata)
- Never reuses a key: the timestamp is strictly increasing within the
  process and the random suffix separates processes
"""
import re
import secrets
import time
from dataclasses import dataclass
from typing import Optional

MAX_NAME_LENGTH = 128

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")

_last_timestamp_ms = 0


def next_timestamp_ms() -> int:
    """Millisecond timestamp that never repeats or goes backwards in this process."""
    global _last_timestamp_ms
    now = int(time.time() * 1000)
    if now <= _last_timestamp_ms:
        now = _last_timestamp_ms + 1
    _last_timestamp_ms = now
    return now


def sanitize_filename(name: Optional[str]) -> str:
    """
    Reduce a client-supplied filename to a safe single path segment.

    Drops directories and path traversal, control characters and leading
    dots, and turns whitespace runs into underscores.
    """
    name = (name or "").replace("\\", "/").split("/")[-1]
    name = _CONTROL_CHARS.sub("", name)
    name = _WHITESPACE.sub("_", name.strip())
    while ".." in name:
        name = name.replace("..", ".")
    name = name.lstrip(".")
    if len(name) > MAX_NAME_LENGTH:
        stem, dot, ext = name.rpartition(".")
        if dot and len(ext) < 16:
            name = stem[:MAX_NAME_LENGTH - len(ext) - 1] + "." + ext
        else:
            name = name[:MAX_NAME_LENGTH]
    return name or "file"


def _check_segment(value: str, label: str) -> str:
    if not value or "/" in value or "\\" in value or value in (".", "..") or _CONTROL_CHARS.search(value):
        raise ValueError(f"Invalid {label}: {value!r}")
    return value


def build_object_key(upload_type: str, owner_id: str, filename: Optional[str]) -> str:
    """Generate a fresh, never-reused object key for an upload."""
    _check_segment(upload_type, "upload type")
    _check_segment(owner_id, "owner id")
    unique = f"{next_timestamp_ms()}_{secrets.token_hex(4)}"
    return f"{upload_type}/{owner_id}/{unique}_{sanitize_filename(filename)}"


@dataclass(frozen=True)
class ObjectKey:
    upload_type: str
    owner_id: str
    name: str

    def __str__(self) -> str:
        return f"{self.upload_type}/{self.owner_id}/{self.name}"


def parse_object_key(key: str) -> Optional[ObjectKey]:
    """Split a key into its three segments, or None if it has a different shape."""
    parts = key.strip("/").split("/")
    if len(parts) != 3 or not all(parts):
        return None
    return ObjectKey(upload_type=parts[0], owner_id=parts[1], name=parts[2])
