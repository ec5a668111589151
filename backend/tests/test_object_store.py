"""
Tests for the S3-compatible object store client.
Runs against the in-memory FakeS3 store from tests/fakes.py.
"""
import io
from dataclasses import replace

import httpx
import pytest

from app.storage.errors import (
    ContainerNotFoundError,
    MalformedRequestError,
    ObjectMissingError,
    StoreAuthError,
    StoreUnavailableError,
)
from app.storage.keys import build_object_key, next_timestamp_ms, parse_object_key, sanitize_filename
from app.storage.object_store import ObjectStoreClient, ObjectStoreConfig
from app.storage.signer import UNSIGNED_PAYLOAD
from app.storage.types import ObjectMetadata

from fakes import BUCKET, PNG_BYTES, FakeS3

KEY = "memories/user-123/1700000000000_abcd1234_photo.png"


def _client(config: ObjectStoreConfig, handler) -> ObjectStoreClient:
    return ObjectStoreClient(config, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestObjects:
    """Tests for put/get/head/remove."""

    @pytest.mark.asyncio
    async def test_put_then_get_and_head(self, object_store: ObjectStoreClient, fake_s3: FakeS3):
        metadata = ObjectMetadata(
            owner_id="user-123",
            upload_type="memories",
            original_name="my photo.png",
            timestamp="2024-01-01T00:00:00+00:00",
        )

        await object_store.put(KEY, PNG_BYTES, "image/png", metadata.to_meta_fields())

        assert await object_store.get_object(KEY) == PNG_BYTES
        stored = await object_store.head(KEY)
        assert stored.owner_id == "user-123"
        assert stored.upload_type == "memories"
        assert stored.original_name == "my photo.png"
        assert stored.timestamp == "2024-01-01T00:00:00+00:00"
        assert stored.content_type == "image/png"
        assert stored.size == len(PNG_BYTES)

    @pytest.mark.asyncio
    async def test_head_missing_object(self, object_store: ObjectStoreClient):
        with pytest.raises(ObjectMissingError):
            await object_store.head("memories/user-123/missing.png")

    @pytest.mark.asyncio
    async def test_get_missing_object(self, object_store: ObjectStoreClient):
        with pytest.raises(ObjectMissingError) as exc_info:
            await object_store.get_object("memories/user-123/missing.png")
        assert exc_info.value.code == "NoSuchKey"

    @pytest.mark.asyncio
    async def test_remove_is_idempotent(self, object_store: ObjectStoreClient, fake_s3: FakeS3):
        await object_store.put(KEY, PNG_BYTES, "image/png")

        await object_store.remove(KEY)
        await object_store.remove(KEY)

        assert KEY not in fake_s3.buckets[BUCKET]

    @pytest.mark.asyncio
    async def test_remove_treats_404_as_success(self, store_config: ObjectStoreConfig):
        client = _client(store_config, lambda request: httpx.Response(404))

        await client.remove(KEY)

    @pytest.mark.asyncio
    async def test_put_seekable_stream_is_hashed(self, object_store: ObjectStoreClient, fake_s3: FakeS3):
        await object_store.put(KEY, io.BytesIO(PNG_BYTES), "image/png")

        request = fake_s3.requests[-1]
        assert request.headers["x-amz-content-sha256"] != UNSIGNED_PAYLOAD
        assert fake_s3.object(KEY)[0] == PNG_BYTES

    @pytest.mark.asyncio
    async def test_put_stream_unsigned_when_enabled(self, store_config: ObjectStoreConfig, fake_s3: FakeS3):
        client = _client(replace(store_config, unsigned_payload=True), fake_s3)

        await client.put(KEY, io.BytesIO(PNG_BYTES), "image/png")

        assert fake_s3.requests[-1].headers["x-amz-content-sha256"] == UNSIGNED_PAYLOAD
        assert fake_s3.object(KEY)[0] == PNG_BYTES

    @pytest.mark.asyncio
    async def test_bytes_are_always_hashed(self, store_config: ObjectStoreConfig, fake_s3: FakeS3):
        client = _client(replace(store_config, unsigned_payload=True), fake_s3)

        await client.put(KEY, PNG_BYTES, "image/png")

        assert fake_s3.requests[-1].headers["x-amz-content-sha256"] != UNSIGNED_PAYLOAD


class TestErrorMapping:
    """Non-2xx responses and transport failures become typed errors."""

    @pytest.mark.asyncio
    async def test_wrong_secret_is_auth_error(self, store_config: ObjectStoreConfig, fake_s3: FakeS3):
        client = _client(replace(store_config, secret_key="wrong-secret"), fake_s3)

        with pytest.raises(StoreAuthError) as exc_info:
            await client.put(KEY, PNG_BYTES, "image/png")
        assert exc_info.value.status_code == 403
        assert exc_info.value.code == "SignatureDoesNotMatch"

    @pytest.mark.asyncio
    async def test_missing_bucket(self, store_config: ObjectStoreConfig, fake_s3: FakeS3):
        client = _client(replace(store_config, bucket="no-such-bucket"), fake_s3)

        with pytest.raises(ContainerNotFoundError):
            await client.put(KEY, PNG_BYTES, "image/png")

    @pytest.mark.asyncio
    async def test_bad_request_is_malformed(self, object_store: ObjectStoreClient, fake_s3: FakeS3):
        fake_s3.fail = 400

        with pytest.raises(MalformedRequestError):
            await object_store.put(KEY, PNG_BYTES, "image/png")

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self, object_store: ObjectStoreClient, fake_s3: FakeS3):
        fake_s3.fail = 503

        with pytest.raises(StoreUnavailableError) as exc_info:
            await object_store.put(KEY, PNG_BYTES, "image/png")
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_network_error_is_unavailable(self, object_store: ObjectStoreClient, fake_s3: FakeS3):
        fake_s3.fail = "network"

        with pytest.raises(StoreUnavailableError):
            await object_store.put(KEY, PNG_BYTES, "image/png")

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self, store_config: ObjectStoreConfig):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(StoreUnavailableError, match="timed out"):
            await _client(store_config, handler).put(KEY, PNG_BYTES, "image/png")

    @pytest.mark.asyncio
    async def test_remove_server_error_propagates(self, object_store: ObjectStoreClient, fake_s3: FakeS3):
        fake_s3.fail = 500

        with pytest.raises(StoreUnavailableError):
            await object_store.remove(KEY)


class TestEnsureContainer:
    """Tests for bucket creation and policy."""

    @pytest.mark.asyncio
    async def test_existing_bucket_is_left_alone(self, object_store: ObjectStoreClient, fake_s3: FakeS3):
        assert await object_store.ensure_container() is True
        assert [r.method for r in fake_s3.requests] == ["HEAD"]

    @pytest.mark.asyncio
    async def test_creates_bucket_and_policy(self, object_store: ObjectStoreClient, fake_s3: FakeS3):
        assert await object_store.ensure_container("new-bucket") is True

        assert "new-bucket" in fake_s3.buckets
        policy = fake_s3.policies["new-bucket"]
        assert policy["Version"] == "2012-10-17"
        statement = policy["Statement"][0]
        assert statement["Effect"] == "Allow"
        assert statement["Action"] == ["s3:GetObject"]
        assert statement["Resource"] == ["arn:aws:s3:::new-bucket/*"]
        assert statement["Condition"]["StringLike"]["aws:Referer"] == ["*"]

    @pytest.mark.asyncio
    async def test_is_idempotent(self, object_store: ObjectStoreClient, fake_s3: FakeS3):
        assert await object_store.ensure_container("new-bucket") is True
        assert await object_store.ensure_container("new-bucket") is True
        assert list(fake_s3.buckets) == [BUCKET, "new-bucket"]

    @pytest.mark.asyncio
    async def test_location_constraint_outside_us_east_1(self, store_config: ObjectStoreConfig):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(404) if request.method == "HEAD" else httpx.Response(200)

        client = _client(replace(store_config, region="eu-west-1"), handler)

        assert await client.ensure_container() is True
        assert b"<LocationConstraint>eu-west-1</LocationConstraint>" in seen[1].content

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, object_store: ObjectStoreClient, fake_s3: FakeS3):
        fake_s3.fail = "network"

        assert await object_store.ensure_container() is False


class TestUrls:
    """Tests for public, presigned and parsed URLs."""

    def test_public_url(self, object_store: ObjectStoreClient):
        assert object_store.public_url(KEY) == f"http://minio.test:9000/{BUCKET}/{KEY}"

    def test_public_endpoint_override(self, store_config: ObjectStoreConfig):
        client = ObjectStoreClient(replace(store_config, public_endpoint="https://cdn.example.com/"))

        url = client.public_url(KEY)

        assert url == f"https://cdn.example.com/{BUCKET}/{KEY}"
        assert client.owns_url(url)
        assert client.key_from_url(url) == KEY

    def test_default_port_is_omitted(self, store_config: ObjectStoreConfig):
        config = replace(store_config, use_ssl=True, port=443)
        assert config.host == "minio.test"
        assert config.base_url == "https://minio.test"

    def test_key_from_path_with_and_without_bucket(self, object_store: ObjectStoreClient):
        assert object_store.key_from_path(f"/{BUCKET}/{KEY}") == KEY
        assert object_store.key_from_path(KEY) == KEY
        assert object_store.key_from_path("/") is None
        assert object_store.key_from_path("memories/../secrets") is None

    def test_foreign_url_is_not_owned(self, object_store: ObjectStoreClient):
        assert not object_store.owns_url(f"https://elsewhere.example.com/{BUCKET}/{KEY}")
        assert object_store.key_from_url(f"https://elsewhere.example.com/{BUCKET}/{KEY}") is None

    def test_presigned_get(self, object_store: ObjectStoreClient):
        url = object_store.presigned_get(KEY, 300)

        assert url.startswith(f"http://minio.test:9000/{BUCKET}/{KEY}?")
        assert "X-Amz-Expires=300" in url
        assert "X-Amz-Signature=" in url

    @pytest.mark.parametrize("ttl", [0, -1, 7 * 24 * 3600 + 1])
    def test_presigned_get_rejects_bad_ttl(self, object_store: ObjectStoreClient, ttl):
        with pytest.raises(ValueError):
            object_store.presigned_get(KEY, ttl)


class TestKeyNaming:
    """Tests for object key generation."""

    def test_key_layout(self):
        key = build_object_key("memories", "user-123", "photo.png")

        parsed = parse_object_key(key)
        assert parsed.upload_type == "memories"
        assert parsed.owner_id == "user-123"
        assert parsed.name.endswith("_photo.png")

    def test_keys_are_never_reused(self):
        keys = {build_object_key("memories", "user-123", "photo.png") for _ in range(200)}
        assert len(keys) == 200

    def test_timestamps_strictly_increase(self):
        stamps = [next_timestamp_ms() for _ in range(100)]
        assert stamps == sorted(set(stamps))

    @pytest.mark.parametrize("raw, expected", [
        ("my holiday photo.png", "my_holiday_photo.png"),
        ("../../etc/passwd", "passwd"),
        ("..\\..\\boot.ini", "boot.ini"),
        ("...hidden.png", "hidden.png"),
        ("bad\x00name\x1f.png", "badname.png"),
        ("a..b.png", "a.b.png"),
        ("", "file"),
        (None, "file"),
    ])
    def test_sanitize_filename(self, raw, expected):
        assert sanitize_filename(raw) == expected

    def test_long_names_keep_extension(self):
        name = sanitize_filename("x" * 300 + ".jpeg")
        assert len(name) == 128
        assert name.endswith(".jpeg")

    @pytest.mark.parametrize("owner", ["", "a/b", "..", "a\\b"])
    def test_invalid_owner_rejected(self, owner):
        with pytest.raises(ValueError):
            build_object_key("memories", owner, "photo.png")
