"""
Stored object references.

A reference is the only thing the record store keeps about a blob. Its
shape alone tells which backend holds the bytes:

    local://<id>                              -> LocalFallbackStore
    <public endpoint>/<bucket>/<type>/<owner>/<name>  -> object store
"""
import enum
from dataclasses import dataclass
from typing import Optional

from app.storage.errors import InvalidReferenceError
from app.storage.keys import parse_object_key
from app.storage.local_store import blob_id_from_ref, is_local_ref


class Backend(str, enum.Enum):
    REMOTE = "remote"
    LOCAL = "local"


@dataclass(frozen=True)
class StoredObjectReference:
    backend: Backend
    ref: str
    key: Optional[str] = None
    bucket: Optional[str] = None
    owner_id: Optional[str] = None

    def __str__(self) -> str:
        return self.ref


def parse_reference(ref: str, object_store=None) -> StoredObjectReference:
    """
    Resolve which backend a reference belongs to.

    Args:
        ref: Reference string as stored in a record
        object_store: ObjectStoreClient used to recognise remote URLs

    Raises:
        InvalidReferenceError: If the reference matches neither backend
    """
    if not ref:
        raise InvalidReferenceError("Empty reference")

    if is_local_ref(ref):
        return StoredObjectReference(backend=Backend.LOCAL, ref=ref, key=blob_id_from_ref(ref))

    if object_store is not None and object_store.owns_url(ref):
        key = object_store.key_from_url(ref)
        if key is None:
            raise InvalidReferenceError(f"Cannot extract object key from {ref}")
        parsed = parse_object_key(key)
        return StoredObjectReference(
            backend=Backend.REMOTE,
            ref=ref,
            key=key,
            bucket=object_store.bucket,
            owner_id=parsed.owner_id if parsed else None,
        )

    if ref.startswith(("http://", "https://")):
        # Remote URL from a store this process is not configured for
        return StoredObjectReference(backend=Backend.REMOTE, ref=ref)

    raise InvalidReferenceError(f"Unrecognised storage reference: {ref}")
