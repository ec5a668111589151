"""
Secure upload gateway.

Decides whether an authenticated caller may obtain a write credential for
an object, or delete one. Each request passes the same stages in a fixed
order and stops at the first failing one:

    authenticated (FastAPI dependency, before this class)
    -> rate-checked             429
    -> type/extension validated 400
    -> ownership matched        403
    -> credential issued / object deleted

Ownership of an existing object is read from its stored metadata
(x-amz-meta-user-id). The client's claim is never trusted on its own.
"""
import base64
import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Optional

from app.errors import (
    AuthorizationFailure,
    GatewayError,
    ObjectNotFound,
    StorageFailure,
    ValidationFailure,
)
from app.schemas.storage import DeleteRequest, DeleteResponse, PresignedUrlRequest
from app.services.rate_limiter import OperationClass, RateLimiter
from app.storage.errors import ObjectMissingError, ObjectStoreError
from app.storage.keys import build_object_key
from app.storage.object_store import ObjectStoreClient
from app.storage.signer import ALGORITHM, SIGV4_TIMESTAMP, to_timestamp
from app.storage.types import ObjectMetadata
from app.storage.validation import parse_upload_type, validate_image_upload
from app.utils.logging import (
    log_credential_issued,
    log_object_deleted,
    log_security_event,
    log_store_failure,
)
from app.utils.metrics import gateway_rejections_total, upload_credentials_issued_total

logger = logging.getLogger(__name__)

POLICY_EXPIRATION_FORMAT = "%Y-%m-%dT%H:%M:%S.000Z"


@dataclass
class PresignedPost:
    """Form action URL and fields for a browser POST upload."""
    url: str
    fields: Dict[str, str]
    public_url: str

    def to_dict(self) -> dict:
        return {"url": self.url, "fields": self.fields, "publicUrl": self.public_url}


class SecureUploadGateway:
    """
    Issues scoped upload credentials and performs owner-checked deletes.

    Args:
        object_store: Client for the bucket credentials are issued for
        rate_limiter: Per-owner counters (may be disabled)
        max_file_size: Upper bound of the policy's content-length-range
        expires_in: Lifetime of an upload policy in seconds
    """

    def __init__(
        self,
        object_store: Optional[ObjectStoreClient],
        rate_limiter: RateLimiter,
        max_file_size: int = 10 * 1024 * 1024,
        expires_in: int = 600
    ):
        self.object_store = object_store
        self.rate_limiter = rate_limiter
        self.max_file_size = max_file_size
        self.expires_in = expires_in

    def _reject(
        self,
        error: GatewayError,
        operation: str,
        stage: str,
        caller_id: str,
        object_key: Optional[str] = None,
        **fields
    ) -> GatewayError:
        """Count and log a rejection, then hand the error back to raise."""
        gateway_rejections_total.labels(operation=operation, reason=stage).inc()
        log_security_event(
            logger,
            reason=error.reason,
            user_id=caller_id,
            operation=operation,
            object_key=object_key,
            stage=stage,
            status_code=error.status_code,
            **fields
        )
        return error

    def _require_store(self) -> ObjectStoreClient:
        if self.object_store is None:
            raise StorageFailure("Storage service is not configured")
        return self.object_store

    async def _rate_check(self, caller_id: str, operation: OperationClass) -> None:
        try:
            await self.rate_limiter.check(caller_id, operation)
        except GatewayError as e:
            raise self._reject(e, operation.value, "rate_limit", caller_id)

    # ------------------------------------------------------------------
    # Upload credentials
    # ------------------------------------------------------------------

    async def issue_upload_credential(self, caller_id: str, request: PresignedUrlRequest) -> PresignedPost:
        """
        Issue a presigned POST policy for exactly one new object key.

        Raises:
            RateLimited, ValidationFailure, AuthorizationFailure, StorageFailure
        """
        operation = OperationClass.UPLOAD.value

        await self._rate_check(caller_id, OperationClass.UPLOAD)

        upload_type = parse_upload_type(request.upload_type)
        if upload_type is None:
            raise self._reject(
                ValidationFailure("Invalid upload type"), operation, "validation", caller_id,
                upload_type=request.upload_type
            )

        error = validate_image_upload(request.file_name, request.content_type)
        if error:
            raise self._reject(
                ValidationFailure(error), operation, "validation", caller_id,
                content_type=request.content_type, file_name=request.file_name
            )

        if request.user_id != caller_id:
            raise self._reject(
                AuthorizationFailure("Forbidden: User ID mismatch"), operation, "ownership", caller_id,
                claimed_user_id=request.user_id
            )

        store = self._require_store()
        try:
            key = build_object_key(upload_type.value, caller_id, request.file_name)
        except ValueError as e:
            raise ValidationFailure("Invalid userId") from e

        try:
            post = self._build_post(store, key, request.content_type.lower(), upload_type.value, caller_id, request.file_name)
        except Exception as e:
            log_store_failure(logger, "issue_upload_credential", str(e), user_id=caller_id,
                              object_key=key, include_traceback=True)
            raise StorageFailure("Failed to generate upload URL") from e

        upload_credentials_issued_total.labels(upload_type=upload_type.value).inc()
        log_credential_issued(
            logger,
            user_id=caller_id,
            object_key=key,
            upload_type=upload_type.value,
            expires_in=self.expires_in,
        )
        return post

    def _build_post(
        self,
        store: ObjectStoreClient,
        key: str,
        content_type: str,
        upload_type: str,
        owner_id: str,
        file_name: str
    ) -> PresignedPost:
        now = to_timestamp()
        metadata = ObjectMetadata(
            owner_id=owner_id,
            upload_type=upload_type,
            original_name=file_name,
            timestamp=now.isoformat(),
        )

        fields: Dict[str, str] = {
            "key": key,
            "Content-Type": content_type,
        }
        fields.update(metadata.to_meta_fields())
        fields.update({
            "x-amz-algorithm": ALGORITHM,
            "x-amz-credential": store.signer.credential(now),
            "x-amz-date": now.strftime(SIGV4_TIMESTAMP),
        })

        # Every form field is pinned by an exact-match condition
        conditions = [
            {"bucket": store.bucket},
            ["content-length-range", 1, self.max_file_size],
        ]
        conditions.extend({name: value} for name, value in fields.items())

        policy = {
            "expiration": (now + timedelta(seconds=self.expires_in)).strftime(POLICY_EXPIRATION_FORMAT),
            "conditions": conditions,
        }
        policy_b64 = base64.b64encode(json.dumps(policy).encode("utf-8")).decode("ascii")

        fields["policy"] = policy_b64
        fields["x-amz-signature"] = store.signer.sign_policy(policy_b64, now)

        return PresignedPost(url=store.post_url(), fields=fields, public_url=store.public_url(key))

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    async def delete_object(self, caller_id: str, request: DeleteRequest) -> DeleteResponse:
        """
        Delete an object after confirming the caller owns it.

        Raises:
            RateLimited, ValidationFailure, AuthorizationFailure,
            ObjectNotFound, StorageFailure
        """
        operation = OperationClass.DELETE.value

        await self._rate_check(caller_id, OperationClass.DELETE)

        if not request.file_path:
            raise self._reject(ValidationFailure("Missing filePath"), operation, "validation", caller_id)

        if request.user_id != caller_id:
            raise self._reject(
                AuthorizationFailure("Forbidden: User ID mismatch"), operation, "ownership", caller_id,
                claimed_user_id=request.user_id
            )

        store = self._require_store()
        if request.file_path.startswith(("http://", "https://")):
            key = store.key_from_url(request.file_path)
        else:
            key = store.key_from_path(request.file_path)
        if not key:
            raise self._reject(
                ValidationFailure("Invalid file path"), operation, "validation", caller_id,
                file_path=request.file_path
            )

        try:
            metadata = await store.head(key)
        except ObjectMissingError as e:
            raise ObjectNotFound("File not found") from e
        except ObjectStoreError as e:
            log_store_failure(logger, "head", e.message, user_id=caller_id, object_key=key)
            raise StorageFailure("Cannot verify file ownership") from e

        if metadata.owner_id != caller_id:
            raise self._reject(
                AuthorizationFailure("You do not have permission to delete this file"),
                operation, "ownership", caller_id, object_key=key,
                object_owner_id=metadata.owner_id
            )

        try:
            await store.remove(key)
        except ObjectStoreError as e:
            log_store_failure(logger, "remove", e.message, user_id=caller_id, object_key=key)
            raise StorageFailure("Failed to delete file") from e

        log_object_deleted(logger, user_id=caller_id, object_key=key, backend="remote")
        return DeleteResponse(success=True)
