"""
Smart storage router.

The single entry point the rest of the application uses for blobs. Uploads
go to the object store when one is configured and reachable, otherwise to
the local fallback store. The returned reference string is all a record
needs to keep: its shape tells get/remove which backend to talk to.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from app.storage.errors import (
    InvalidReferenceError,
    InvalidUploadError,
    ObjectMissingError,
    OwnershipError,
    StorageError,
    UploadFailedError,
)
from app.storage.keys import build_object_key
from app.storage.local_store import LocalFallbackStore
from app.storage.object_store import ObjectStoreClient
from app.storage.references import Backend, StoredObjectReference, parse_reference
from app.storage.types import FileUpload, ObjectMetadata
from app.storage.validation import parse_upload_type, validate_image_upload, validate_size
from app.utils.logging import (
    log_object_deleted,
    log_security_event,
    log_storage_fallback,
    log_upload_stored,
)
from app.utils.metrics import (
    storage_deletes_total,
    storage_fallbacks_total,
    storage_request_duration_seconds,
    storage_uploads_total,
)

logger = logging.getLogger(__name__)


class SmartStorageRouter:
    """
    Remote-first blob storage with a local fallback.

    Args:
        local: Fallback store, always available
        remote: Object store client, or None to store everything locally
        max_file_size: Upper bound for a single upload in bytes
    """

    def __init__(
        self,
        local: LocalFallbackStore,
        remote: Optional[ObjectStoreClient] = None,
        max_file_size: int = 10 * 1024 * 1024
    ):
        self.local = local
        self.remote = remote
        self.max_file_size = max_file_size
        self._container_ready = False

    def parse(self, ref: str) -> StoredObjectReference:
        return parse_reference(ref, self.remote)

    async def upload(self, file: FileUpload, path_prefix: str, owner_id: str) -> str:
        """
        Store a file and return its reference.

        Raises:
            InvalidUploadError: File type, extension, size or prefix rejected
            UploadFailedError: Neither backend could store the file
        """
        upload_type = parse_upload_type(path_prefix)
        if upload_type is None:
            raise InvalidUploadError(f"Invalid upload type: {path_prefix}")

        error = validate_image_upload(file.filename, file.content_type) or \
            validate_size(file.size, self.max_file_size)
        if error:
            raise InvalidUploadError(error)

        if self.remote is not None:
            start = time.perf_counter()
            try:
                url = await self._upload_remote(file, upload_type.value, owner_id)
            except Exception as e:
                storage_fallbacks_total.inc()
                log_storage_fallback(
                    logger,
                    user_id=owner_id,
                    operation="upload",
                    error=f"{type(e).__name__}: {e}",
                )
            else:
                duration = time.perf_counter() - start
                storage_uploads_total.labels(backend=Backend.REMOTE.value).inc()
                storage_request_duration_seconds.labels(
                    operation="upload", backend=Backend.REMOTE.value
                ).observe(duration)
                log_upload_stored(
                    logger,
                    user_id=owner_id,
                    object_key=url,
                    backend=Backend.REMOTE.value,
                    duration_ms=duration * 1000,
                    size=file.size,
                )
                return url

        start = time.perf_counter()
        try:
            ref = await self.local.put(
                file.data,
                file.content_type,
                upload_type.value,
                filename=file.filename,
                owner_id=owner_id,
            )
        except StorageError as e:
            raise UploadFailedError(f"Failed to upload file: {e.message}") from e

        duration = time.perf_counter() - start
        storage_uploads_total.labels(backend=Backend.LOCAL.value).inc()
        storage_request_duration_seconds.labels(
            operation="upload", backend=Backend.LOCAL.value
        ).observe(duration)
        log_upload_stored(
            logger,
            user_id=owner_id,
            object_key=ref,
            backend=Backend.LOCAL.value,
            duration_ms=duration * 1000,
            size=file.size,
        )
        return ref

    async def _upload_remote(self, file: FileUpload, upload_type: str, owner_id: str) -> str:
        if not self._container_ready:
            self._container_ready = await self.remote.ensure_container()

        key = build_object_key(upload_type, owner_id, file.filename)
        metadata = ObjectMetadata(
            owner_id=owner_id,
            upload_type=upload_type,
            original_name=file.filename,
            content_type=file.content_type,
            size=file.size,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        await self.remote.put(key, file.data, file.content_type, metadata.to_meta_fields())
        return self.remote.public_url(key)

    async def get(self, ref: str) -> Optional[str]:
        """
        Resolve a reference to something an <img> can display.

        Remote references are already URLs and are returned unchanged;
        local ones become a data URI, or None if the blob is gone.
        """
        parsed = self.parse(ref)
        if parsed.backend is Backend.LOCAL:
            return await self.local.get(ref)
        return ref

    def _require_owner(self, metadata: ObjectMetadata, owner_id: str, ref: str, backend: Backend) -> None:
        if metadata.owner_id == owner_id:
            return
        storage_deletes_total.labels(backend=backend.value, outcome="rejected").inc()
        log_security_event(
            logger,
            reason="owner_mismatch",
            user_id=owner_id,
            operation="delete",
            object_key=ref,
            backend=backend.value,
            object_owner_id=metadata.owner_id,
        )
        raise OwnershipError(f"{ref} is not owned by the caller", key=ref)

    async def remove(self, ref: str, owner_id: str) -> None:
        """
        Delete the blob behind a reference after checking its stored owner.

        Not-found counts as success on both backends. Any other remote
        failure propagates so the owning record is kept.

        Raises:
            OwnershipError: Stored owner metadata is not owner_id
            InvalidReferenceError: No configured backend holds the reference
            StorageError: Metadata read or delete failed
        """
        parsed = self.parse(ref)

        if parsed.backend is Backend.LOCAL:
            metadata = await self.local.head(ref)
            if metadata is None:
                storage_deletes_total.labels(backend=Backend.LOCAL.value, outcome="missing").inc()
                return
            self._require_owner(metadata, owner_id, ref, Backend.LOCAL)
            await self.local.remove(ref)
            storage_deletes_total.labels(backend=Backend.LOCAL.value, outcome="deleted").inc()
            log_object_deleted(logger, user_id=owner_id, object_key=ref, backend=Backend.LOCAL.value)
            return

        if self.remote is None or parsed.key is None:
            storage_deletes_total.labels(backend=Backend.REMOTE.value, outcome="rejected").inc()
            raise InvalidReferenceError(f"No configured object store holds {ref}", key=ref)

        try:
            metadata = await self.remote.head(parsed.key)
        except ObjectMissingError:
            storage_deletes_total.labels(backend=Backend.REMOTE.value, outcome="missing").inc()
            return
        except StorageError:
            storage_deletes_total.labels(backend=Backend.REMOTE.value, outcome="failed").inc()
            raise

        self._require_owner(metadata, owner_id, ref, Backend.REMOTE)

        try:
            await self.remote.remove(parsed.key)
        except StorageError:
            storage_deletes_total.labels(backend=Backend.REMOTE.value, outcome="failed").inc()
            raise

        storage_deletes_total.labels(backend=Backend.REMOTE.value, outcome="deleted").inc()
        log_object_deleted(
            logger,
            user_id=owner_id,
            object_key=parsed.key,
            backend=Backend.REMOTE.value,
        )
