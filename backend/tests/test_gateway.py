"""
Tests for SecureUploadGateway: credential issuance and owner-checked deletes.
"""
import base64
import json

import pytest

from app.errors import (
    AuthorizationFailure,
    ObjectNotFound,
    RateLimited,
    StorageFailure,
    ValidationFailure,
)
from app.schemas.storage import DeleteRequest, PresignedUrlRequest
from app.services.rate_limiter import RateLimiter
from app.storage.gateway import SecureUploadGateway
from app.storage.object_store import ObjectStoreClient
from app.storage.types import ObjectMetadata

from fakes import BUCKET, OTHER_USER_ID, PNG_BYTES, TEST_USER_ID, FakeRedis, FakeS3


def _upload_request(**overrides) -> PresignedUrlRequest:
    fields = dict(fileName="photo.png", contentType="image/png", userId=TEST_USER_ID, uploadType="memories")
    fields.update(overrides)
    return PresignedUrlRequest(**fields)


async def _put_owned(object_store: ObjectStoreClient, owner_id: str, key: str = None) -> str:
    key = key or f"memories/{owner_id}/1700000000000_abcd1234_photo.png"
    metadata = ObjectMetadata(owner_id=owner_id, upload_type="memories", original_name="photo.png")
    await object_store.put(key, PNG_BYTES, "image/png", metadata.to_meta_fields())
    return key


def _decode_policy(fields: dict) -> dict:
    return json.loads(base64.b64decode(fields["policy"]))


class TestIssueUploadCredential:
    """Tests for presigned POST policies."""

    @pytest.mark.asyncio
    async def test_issues_scoped_policy(self, gateway: SecureUploadGateway):
        post = await gateway.issue_upload_credential(TEST_USER_ID, _upload_request())

        assert post.url == f"http://minio.test:9000/{BUCKET}"
        key = post.fields["key"]
        assert key.startswith(f"memories/{TEST_USER_ID}/")
        assert key.endswith("_photo.png")
        assert post.public_url == f"http://minio.test:9000/{BUCKET}/{key}"

        assert post.fields["Content-Type"] == "image/png"
        assert post.fields["x-amz-meta-user-id"] == TEST_USER_ID
        assert post.fields["x-amz-meta-upload-type"] == "memories"
        assert post.fields["x-amz-meta-original-name"] == "photo.png"
        assert post.fields["x-amz-algorithm"] == "AWS4-HMAC-SHA256"
        assert post.fields["x-amz-credential"].startswith("test-access-key/")
        assert len(post.fields["x-amz-signature"]) == 64

    @pytest.mark.asyncio
    async def test_policy_pins_every_field(self, gateway: SecureUploadGateway):
        post = await gateway.issue_upload_credential(TEST_USER_ID, _upload_request())

        policy = _decode_policy(post.fields)
        conditions = policy["conditions"]
        assert {"bucket": BUCKET} in conditions
        assert ["content-length-range", 1, 1024 * 1024] in conditions
        for name in ("key", "Content-Type", "x-amz-meta-user-id", "x-amz-meta-upload-type",
                     "x-amz-meta-original-name", "x-amz-meta-timestamp", "x-amz-credential", "x-amz-date"):
            assert {name: post.fields[name]} in conditions
        assert policy["expiration"].endswith(".000Z")

    @pytest.mark.asyncio
    async def test_policy_signature_matches_signer(self, gateway: SecureUploadGateway, object_store: ObjectStoreClient):
        from datetime import datetime, timezone

        post = await gateway.issue_upload_credential(TEST_USER_ID, _upload_request())

        amz_date = datetime.strptime(post.fields["x-amz-date"], "%Y%m%dT%H%M%SZ").replace(tzinfo=timezone.utc)
        assert post.fields["x-amz-signature"] == object_store.signer.sign_policy(post.fields["policy"], amz_date)

    @pytest.mark.asyncio
    async def test_each_credential_gets_a_new_key(self, gateway: SecureUploadGateway):
        first = await gateway.issue_upload_credential(TEST_USER_ID, _upload_request())
        second = await gateway.issue_upload_credential(TEST_USER_ID, _upload_request())

        assert first.fields["key"] != second.fields["key"]

    @pytest.mark.asyncio
    async def test_extension_mismatch_rejected(self, gateway: SecureUploadGateway):
        with pytest.raises(ValidationFailure, match="doesn't match"):
            await gateway.issue_upload_credential(TEST_USER_ID, _upload_request(contentType="image/gif"))

    @pytest.mark.asyncio
    async def test_non_image_rejected(self, gateway: SecureUploadGateway):
        with pytest.raises(ValidationFailure, match="Only images"):
            await gateway.issue_upload_credential(
                TEST_USER_ID, _upload_request(fileName="run.exe", contentType="application/octet-stream")
            )

    @pytest.mark.asyncio
    async def test_unknown_upload_type_rejected(self, gateway: SecureUploadGateway):
        with pytest.raises(ValidationFailure, match="Invalid upload type"):
            await gateway.issue_upload_credential(TEST_USER_ID, _upload_request(uploadType="documents"))

    @pytest.mark.asyncio
    async def test_missing_fields_rejected(self, gateway: SecureUploadGateway):
        with pytest.raises(ValidationFailure):
            await gateway.issue_upload_credential(TEST_USER_ID, _upload_request(fileName=None))

    @pytest.mark.asyncio
    async def test_user_id_mismatch_rejected(self, gateway: SecureUploadGateway):
        with pytest.raises(AuthorizationFailure):
            await gateway.issue_upload_credential(TEST_USER_ID, _upload_request(userId=OTHER_USER_ID))

    @pytest.mark.asyncio
    async def test_rate_limit_checked_before_validation(self, gateway: SecureUploadGateway):
        for _ in range(3):
            await gateway.issue_upload_credential(TEST_USER_ID, _upload_request())

        # Invalid in every other way, but the rate check comes first
        with pytest.raises(RateLimited):
            await gateway.issue_upload_credential(
                TEST_USER_ID, _upload_request(contentType="text/plain", userId=OTHER_USER_ID)
            )

    @pytest.mark.asyncio
    async def test_validation_checked_before_ownership(self, gateway: SecureUploadGateway):
        with pytest.raises(ValidationFailure):
            await gateway.issue_upload_credential(
                TEST_USER_ID, _upload_request(contentType="image/gif", userId=OTHER_USER_ID)
            )

    @pytest.mark.asyncio
    async def test_store_not_configured(self, rate_limiter: RateLimiter):
        gateway = SecureUploadGateway(None, rate_limiter)

        with pytest.raises(StorageFailure):
            await gateway.issue_upload_credential(TEST_USER_ID, _upload_request())

    @pytest.mark.asyncio
    async def test_counter_store_down_still_issues(self, gateway: SecureUploadGateway, counter_store: FakeRedis):
        counter_store.broken = True

        for _ in range(5):
            await gateway.issue_upload_credential(TEST_USER_ID, _upload_request())


class TestDeleteObject:
    """Tests for owner-checked deletes."""

    @pytest.mark.asyncio
    async def test_owner_can_delete(self, gateway: SecureUploadGateway, object_store: ObjectStoreClient, fake_s3: FakeS3):
        key = await _put_owned(object_store, TEST_USER_ID)

        response = await gateway.delete_object(TEST_USER_ID, DeleteRequest(filePath=key, userId=TEST_USER_ID))

        assert response.success is True
        assert key not in fake_s3.buckets[BUCKET]

    @pytest.mark.asyncio
    async def test_path_with_bucket_prefix(self, gateway: SecureUploadGateway, object_store: ObjectStoreClient, fake_s3: FakeS3):
        key = await _put_owned(object_store, TEST_USER_ID)

        await gateway.delete_object(TEST_USER_ID, DeleteRequest(filePath=f"/{BUCKET}/{key}", userId=TEST_USER_ID))

        assert key not in fake_s3.buckets[BUCKET]

    @pytest.mark.asyncio
    async def test_public_url_as_path(self, gateway: SecureUploadGateway, object_store: ObjectStoreClient, fake_s3: FakeS3):
        key = await _put_owned(object_store, TEST_USER_ID)

        await gateway.delete_object(
            TEST_USER_ID, DeleteRequest(filePath=object_store.public_url(key), userId=TEST_USER_ID)
        )

        assert key not in fake_s3.buckets[BUCKET]

    @pytest.mark.parametrize("upload_type", ["memories", "profile_pictures"])
    @pytest.mark.asyncio
    async def test_body_user_mismatch_always_rejected(
        self, gateway: SecureUploadGateway, object_store: ObjectStoreClient, fake_s3: FakeS3, upload_type
    ):
        key = await _put_owned(object_store, TEST_USER_ID, f"{upload_type}/{TEST_USER_ID}/1_ab_photo.png")

        with pytest.raises(AuthorizationFailure):
            await gateway.delete_object(OTHER_USER_ID, DeleteRequest(filePath=key, userId=TEST_USER_ID))

        assert key in fake_s3.buckets[BUCKET]

    @pytest.mark.asyncio
    async def test_metadata_owner_mismatch_rejected(
        self, gateway: SecureUploadGateway, object_store: ObjectStoreClient, fake_s3: FakeS3
    ):
        key = await _put_owned(object_store, TEST_USER_ID)

        with pytest.raises(AuthorizationFailure):
            await gateway.delete_object(OTHER_USER_ID, DeleteRequest(filePath=key, userId=OTHER_USER_ID))

        assert key in fake_s3.buckets[BUCKET]

    @pytest.mark.asyncio
    async def test_path_containing_caller_id_is_not_enough(
        self, gateway: SecureUploadGateway, object_store: ObjectStoreClient, fake_s3: FakeS3
    ):
        # Key path names the caller, but the stored owner is someone else
        key = await _put_owned(object_store, TEST_USER_ID, f"memories/{OTHER_USER_ID}/1_ab_photo.png")

        with pytest.raises(AuthorizationFailure):
            await gateway.delete_object(OTHER_USER_ID, DeleteRequest(filePath=key, userId=OTHER_USER_ID))

        assert key in fake_s3.buckets[BUCKET]

    @pytest.mark.asyncio
    async def test_object_without_owner_metadata_rejected(
        self, gateway: SecureUploadGateway, object_store: ObjectStoreClient
    ):
        key = f"memories/{TEST_USER_ID}/legacy.png"
        await object_store.put(key, PNG_BYTES, "image/png")

        with pytest.raises(AuthorizationFailure):
            await gateway.delete_object(TEST_USER_ID, DeleteRequest(filePath=key, userId=TEST_USER_ID))

    @pytest.mark.asyncio
    async def test_missing_object(self, gateway: SecureUploadGateway):
        with pytest.raises(ObjectNotFound):
            await gateway.delete_object(
                TEST_USER_ID, DeleteRequest(filePath=f"memories/{TEST_USER_ID}/missing.png", userId=TEST_USER_ID)
            )

    @pytest.mark.asyncio
    async def test_unreadable_metadata(self, gateway: SecureUploadGateway, object_store: ObjectStoreClient, fake_s3: FakeS3):
        key = await _put_owned(object_store, TEST_USER_ID)
        fake_s3.fail = 503

        with pytest.raises(StorageFailure, match="verify file ownership"):
            await gateway.delete_object(TEST_USER_ID, DeleteRequest(filePath=key, userId=TEST_USER_ID))

    @pytest.mark.parametrize("path", [None, "", "/", f"/{BUCKET}/", "memories/../../etc"])
    @pytest.mark.asyncio
    async def test_invalid_paths(self, gateway: SecureUploadGateway, path):
        with pytest.raises(ValidationFailure):
            await gateway.delete_object(TEST_USER_ID, DeleteRequest(filePath=path, userId=TEST_USER_ID))

    @pytest.mark.asyncio
    async def test_delete_rate_limited(self, gateway: SecureUploadGateway, object_store: ObjectStoreClient):
        for _ in range(2):
            key = await _put_owned(object_store, TEST_USER_ID)
            await gateway.delete_object(TEST_USER_ID, DeleteRequest(filePath=key, userId=TEST_USER_ID))

        with pytest.raises(RateLimited):
            await gateway.delete_object(TEST_USER_ID, DeleteRequest(filePath="anything", userId=TEST_USER_ID))
