"""
S3-compatible object store client (MinIO, Cloudflare R2, AWS S3).

Talks to the store's REST API directly with httpx and signs every request
with SigV4 (see app.storage.signer). Uses path-style addressing:
    {scheme}://{host}/{bucket}/{key}

Every call carries an explicit timeout and is attempted once. Failures are
raised as typed ObjectStoreError subclasses so the router can decide to fall
back to local storage; ensure_container is the only operation that logs and
continues instead of raising.
"""
import json
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, Mapping, Optional, Type, Union
from urllib.parse import unquote, urlsplit

import httpx

from app.storage.errors import (
    ContainerNotFoundError,
    MalformedRequestError,
    ObjectMissingError,
    ObjectStoreError,
    StoreAuthError,
    StoreUnavailableError,
)
from app.storage.signer import Signer, canonical_path
from app.storage.types import ObjectMetadata

logger = logging.getLogger(__name__)

# Presigned GET URLs are capped at 7 days by SigV4
MAX_PRESIGN_TTL = 7 * 24 * 60 * 60

UPLOAD_CHUNK_SIZE = 256 * 1024


@dataclass(frozen=True)
class ObjectStoreConfig:
    """Connection settings for one bucket on an S3-compatible store."""
    endpoint: str
    access_key: str
    secret_key: str = field(repr=False)
    bucket: str = "dayli-data"
    region: str = "us-east-1"
    port: Optional[int] = None
    use_ssl: bool = True
    public_endpoint: Optional[str] = None
    timeout_seconds: float = 30.0
    unsigned_payload: bool = False
    client_origin: str = "*"

    @classmethod
    def from_settings(cls, settings) -> Optional["ObjectStoreConfig"]:
        """Build from application Settings; None when storage is not configured."""
        if not settings.storage_configured:
            return None
        return cls(
            endpoint=settings.storage_endpoint,
            access_key=settings.storage_access_key,
            secret_key=settings.storage_secret_key,
            bucket=settings.storage_bucket,
            region=settings.storage_region,
            port=settings.storage_port,
            use_ssl=settings.storage_use_ssl,
            public_endpoint=settings.storage_public_endpoint,
            timeout_seconds=settings.storage_timeout_seconds,
            unsigned_payload=settings.storage_unsigned_payload,
            client_origin=settings.client_origin,
        )

    @property
    def scheme(self) -> str:
        return "https" if self.use_ssl else "http"

    @property
    def host(self) -> str:
        """Host header value; the port is omitted when it is the scheme default."""
        endpoint = self.endpoint
        if "://" in endpoint:
            endpoint = urlsplit(endpoint).netloc
        endpoint = endpoint.rstrip("/")
        default_port = 443 if self.use_ssl else 80
        if self.port and self.port != default_port and ":" not in endpoint:
            return f"{endpoint}:{self.port}"
        return endpoint

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}"

    @property
    def public_base_url(self) -> str:
        return (self.public_endpoint or self.base_url).rstrip("/")


def _error_code(response: httpx.Response) -> Optional[str]:
    """Extract <Code> from an S3 XML error body, if there is one."""
    if not response.content:
        return None
    try:
        root = ET.fromstring(response.content)
    except ET.ParseError:
        return None
    code = root.find("Code")
    return code.text if code is not None else None


class ObjectStoreClient:
    """
    Async client for a single bucket.

    One instance per application (or per test); configuration is passed in,
    never read from globals.
    """

    def __init__(
        self,
        config: ObjectStoreConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        signer: Optional[Signer] = None
    ):
        self.config = config
        self.signer = signer or Signer(config.access_key, config.secret_key, config.region)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=config.timeout_seconds)

    @property
    def bucket(self) -> str:
        return self.config.bucket

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ObjectStoreClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(
        self,
        method: str,
        path: str,
        query: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        body: Union[bytes, BinaryIO, None] = b"",
        key: Optional[str] = None
    ) -> httpx.Response:
        """Sign and send one request; transport failures become StoreUnavailableError."""
        request_headers = {"host": self.config.host}
        request_headers.update(headers or {})

        is_stream = body is not None and hasattr(body, "read")
        content: object = body
        if is_stream:
            start = body.tell()
            body.seek(0, 2)
            request_headers["content-length"] = str(body.tell() - start)
            body.seek(start)

        signed = self.signer.sign(
            method,
            path,
            query=query,
            headers=request_headers,
            payload=body,
            unsigned_payload=is_stream and self.config.unsigned_payload,
        )

        if is_stream:
            content = self._stream(body)

        url = f"{self.config.base_url}{signed.url_path}"
        try:
            return await self._client.request(
                method,
                url,
                headers=signed.headers,
                content=content if content else None,
                timeout=self.config.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise StoreUnavailableError(
                f"Storage request timed out after {self.config.timeout_seconds}s", key=key
            ) from e
        except httpx.TransportError as e:
            raise StoreUnavailableError(
                f"Network error: cannot connect to storage service ({type(e).__name__})", key=key
            ) from e

    @staticmethod
    async def _stream(fileobj: BinaryIO):
        while True:
            chunk = fileobj.read(UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk

    @staticmethod
    def _check(
        response: httpx.Response,
        key: Optional[str] = None,
        missing: Type[ObjectStoreError] = ObjectMissingError
    ) -> None:
        """Raise the typed error matching a non-2xx response."""
        status_code = response.status_code
        if 200 <= status_code < 300:
            return

        code = _error_code(response)
        detail = f" ({code})" if code else ""

        if status_code in (401, 403):
            raise StoreAuthError(
                f"Permission denied by storage service{detail}",
                key=key, status_code=status_code, code=code
            )
        if status_code == 404:
            error_cls = ContainerNotFoundError if code == "NoSuchBucket" else missing
            raise error_cls(
                f"Not found{detail}", key=key, status_code=status_code, code=code
            )
        if status_code == 400:
            raise MalformedRequestError(
                f"Bad request: storage service rejected the request{detail}",
                key=key, status_code=status_code, code=code
            )
        if status_code >= 500:
            raise StoreUnavailableError(
                f"Storage service error {status_code}{detail}",
                key=key, status_code=status_code, code=code
            )
        raise ObjectStoreError(
            f"Unexpected storage response {status_code}{detail}",
            key=key, status_code=status_code, code=code
        )

    def _object_path(self, key: str) -> str:
        return f"/{self.bucket}/{key}"

    # ------------------------------------------------------------------
    # Bucket lifecycle
    # ------------------------------------------------------------------

    def bucket_policy(self, bucket: Optional[str] = None) -> dict:
        """Public read, restricted by Referer to the client origin."""
        bucket = bucket or self.bucket
        return {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Principal": {"AWS": ["*"]},
                    "Action": ["s3:GetObject"],
                    "Resource": [f"arn:aws:s3:::{bucket}/*"],
                    "Condition": {
                        "StringLike": {
                            "aws:Referer": [self.config.client_origin]
                        }
                    }
                }
            ]
        }

    async def container_exists(self, name: Optional[str] = None) -> bool:
        bucket = name or self.bucket
        response = await self._send("HEAD", f"/{bucket}")
        if response.status_code == 404:
            return False
        self._check(response, missing=ContainerNotFoundError)
        return True

    async def ensure_container(self, name: Optional[str] = None) -> bool:
        """
        Create the bucket and apply its policy if it does not exist yet.

        Idempotent. Never raises: a missing bucket surfaces later as an
        upload failure, not as a startup crash.

        Returns:
            True if the bucket exists (or was created), False otherwise
        """
        bucket = name or self.bucket
        try:
            if await self.container_exists(bucket):
                return True

            body = b""
            if self.config.region != "us-east-1":
                body = (
                    '<CreateBucketConfiguration xmlns="http://s3.amazonaws.com/doc/2006-03-01/">'
                    f"<LocationConstraint>{self.config.region}</LocationConstraint>"
                    "</CreateBucketConfiguration>"
                ).encode("utf-8")
            response = await self._send("PUT", f"/{bucket}", body=body)
            self._check(response, missing=ContainerNotFoundError)
            logger.info(f"Bucket '{bucket}' created")

            policy = json.dumps(self.bucket_policy(bucket)).encode("utf-8")
            response = await self._send(
                "PUT",
                f"/{bucket}",
                query={"policy": ""},
                headers={"content-type": "application/json"},
                body=policy,
            )
            self._check(response, missing=ContainerNotFoundError)
            logger.info(f"Bucket policy applied to '{bucket}'")
            return True

        except ObjectStoreError as e:
            logger.error(f"Error ensuring bucket '{bucket}' exists: {e.message}")
            return False

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    async def put(
        self,
        key: str,
        data: Union[bytes, BinaryIO],
        content_type: str,
        metadata: Optional[Mapping[str, str]] = None
    ) -> None:
        """
        Upload an object.

        Args:
            key: Object key inside the bucket
            data: Bytes or a seekable binary file object
            content_type: MIME type stored with the object
            metadata: Extra headers, normally x-amz-meta-* fields

        Raises:
            StoreAuthError, ContainerNotFoundError, MalformedRequestError,
            StoreUnavailableError
        """
        headers: Dict[str, str] = {"content-type": content_type}
        headers.update(metadata or {})

        response = await self._send("PUT", self._object_path(key), headers=headers, body=data, key=key)
        self._check(response, key=key, missing=ContainerNotFoundError)
        logger.debug(f"Stored object {key}")

    async def get_object(self, key: str) -> bytes:
        response = await self._send("GET", self._object_path(key), key=key)
        self._check(response, key=key)
        return response.content

    async def head(self, key: str) -> ObjectMetadata:
        """
        Read an object's stored metadata.

        Raises:
            ObjectMissingError: If the object does not exist
        """
        response = await self._send("HEAD", self._object_path(key), key=key)
        self._check(response, key=key)
        return ObjectMetadata.from_headers(response.headers)

    async def remove(self, key: str) -> None:
        """Delete an object. A missing object counts as deleted."""
        response = await self._send("DELETE", self._object_path(key), key=key)
        if response.status_code == 404:
            logger.debug(f"Object {key} not found (already deleted)")
            return
        self._check(response, key=key)
        logger.debug(f"Deleted object {key}")

    def presigned_get(self, key: str, ttl_seconds: int) -> str:
        """
        Time-limited GET URL for an object.

        The TTL is the caller's policy: minutes for confirmation flows,
        days for display URLs.
        """
        if not 1 <= ttl_seconds <= MAX_PRESIGN_TTL:
            raise ValueError(f"ttl_seconds must be between 1 and {MAX_PRESIGN_TTL}")
        return self.signer.presign_url(
            "GET",
            self.config.host,
            self._object_path(key),
            expires=ttl_seconds,
            scheme=self.config.scheme,
        )

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    def public_url(self, key: str) -> str:
        return f"{self.config.public_base_url}{canonical_path(self._object_path(key))}"

    def post_url(self) -> str:
        """Form action URL for browser POST uploads."""
        return f"{self.config.base_url}/{self.bucket}"

    def owns_url(self, url: str) -> bool:
        """True if the URL points into this bucket."""
        for base in {self.config.public_base_url, self.config.base_url}:
            if url.startswith(f"{base}/{self.bucket}/"):
                return True
        return False

    def key_from_path(self, path: str) -> Optional[str]:
        """
        Object key from a path with or without the leading bucket segment:
            /bucket/memories/uid/file.jpg -> memories/uid/file.jpg
            /memories/uid/file.jpg        -> memories/uid/file.jpg
        """
        parts = [p for p in unquote(path).split("/") if p]
        if parts and parts[0] == self.bucket:
            parts = parts[1:]
        if not parts or any(p in (".", "..") for p in parts):
            return None
        return "/".join(parts)

    def key_from_url(self, url: str) -> Optional[str]:
        for base in (self.config.public_base_url, self.config.base_url):
            prefix = f"{base}/{self.bucket}/"
            if url.startswith(prefix):
                return self.key_from_path(url[len(prefix):].split("?", 1)[0])
        return None
