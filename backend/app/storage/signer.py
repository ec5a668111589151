"""
AWS Signature Version 4 signing for S3-compatible object stores.

The signer is a pure function of its inputs plus the timestamp: the same
(method, path, query, headers, payload, timestamp) always yields the same
signature. It holds the secret key only to derive per-day signing keys and
never exposes it in reprs or logs.

Signing key derivation (four chained HMAC-SHA256 steps):
    kDate    = HMAC("AWS4" + secret, date)
    kRegion  = HMAC(kDate, region)
    kService = HMAC(kRegion, service)
    kSigning = HMAC(kService, "aws4_request")

Unsigned payloads:
    Streamed bodies can be signed with the UNSIGNED-PAYLOAD sentinel so the
    body does not need to be read twice. The store then cannot verify the
    body against the signature, only the headers. This is opt-in through
    `unsigned_payload=True`, except for non-seekable streams which cannot be
    hashed without buffering them.
"""
import hashlib
import hmac
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import BinaryIO, Dict, Mapping, Optional, Union
from urllib.parse import quote

ALGORITHM = "AWS4-HMAC-SHA256"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"
EMPTY_SHA256 = hashlib.sha256(b"").hexdigest()
SIGV4_TIMESTAMP = "%Y%m%dT%H%M%SZ"
SIGV4_DATE = "%Y%m%d"

# Read size used when hashing file payloads
HASH_CHUNK_SIZE = 1024 * 1024

Payload = Union[bytes, bytearray, memoryview, str, BinaryIO, None]


def _hmac(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


def _uri_encode(value: str, safe: str = "-_.~") -> str:
    return quote(value, safe=safe)


def canonical_path(path: str) -> str:
    """
    URI-encode a request path the way S3 expects it.

    Slashes are kept, every other reserved character is percent-encoded.
    S3 paths are not normalized (no collapsing of '//' or '.').
    """
    if not path:
        return "/"
    if not path.startswith("/"):
        path = "/" + path
    return _uri_encode(path, safe="/-_.~")


def canonical_query(query: Optional[Mapping[str, str]]) -> str:
    """Encode and sort query parameters by key, then value."""
    if not query:
        return ""
    pairs = sorted(
        (_uri_encode(str(k)), _uri_encode("" if v is None else str(v)))
        for k, v in query.items()
    )
    return "&".join(f"{k}={v}" for k, v in pairs)


def _normalize_headers(headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Lower-case names and collapse whitespace in values."""
    normalized: Dict[str, str] = {}
    for name, value in (headers or {}).items():
        normalized[name.strip().lower()] = " ".join(str(value).split())
    return normalized


def to_timestamp(moment: Optional[datetime] = None) -> datetime:
    """Return an aware UTC datetime truncated to whole seconds."""
    if moment is None:
        moment = datetime.now(timezone.utc)
    elif moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    else:
        moment = moment.astimezone(timezone.utc)
    return moment.replace(microsecond=0)


@dataclass
class SignedRequest:
    """
    A request ready to be sent. Built right before the network call and
    discarded afterwards; never persisted.
    """
    method: str
    canonical_path: str
    canonical_query: str
    headers: Dict[str, str] = field(repr=False)
    signed_headers: str
    payload_hash: str
    amz_date: str
    signature: str = field(repr=False)

    @property
    def authorization(self) -> str:
        return self.headers["authorization"]

    @property
    def url_path(self) -> str:
        """Path plus encoded query string, as it must appear on the wire."""
        if self.canonical_query:
            return f"{self.canonical_path}?{self.canonical_query}"
        return self.canonical_path


class Signer:
    """SigV4 signer bound to one access key, region and service."""

    def __init__(self, access_key: str, secret_key: str, region: str, service: str = "s3"):
        self.access_key = access_key
        self._secret_key = secret_key
        self.region = region
        self.service = service

    def __repr__(self) -> str:
        return f"<Signer(access_key={self.access_key}, region={self.region}, service={self.service})>"

    def credential_scope(self, date_stamp: str) -> str:
        return f"{date_stamp}/{self.region}/{self.service}/aws4_request"

    def credential(self, timestamp: datetime) -> str:
        """Access key plus scope, as used in Credential= and x-amz-credential."""
        date_stamp = to_timestamp(timestamp).strftime(SIGV4_DATE)
        return f"{self.access_key}/{self.credential_scope(date_stamp)}"

    def derive_signing_key(self, date_stamp: str) -> bytes:
        k_date = _hmac(f"AWS4{self._secret_key}".encode("utf-8"), date_stamp)
        k_region = _hmac(k_date, self.region)
        k_service = _hmac(k_region, self.service)
        return _hmac(k_service, "aws4_request")

    @staticmethod
    def hash_payload(payload: Payload, unsigned: bool = False) -> str:
        """
        Hex SHA-256 of the payload, or the UNSIGNED-PAYLOAD sentinel.

        File objects are read in chunks and rewound to where they started.
        """
        if unsigned:
            return UNSIGNED_PAYLOAD
        if payload is None:
            return EMPTY_SHA256
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        if isinstance(payload, (bytes, bytearray, memoryview)):
            return hashlib.sha256(payload).hexdigest()

        seekable = getattr(payload, "seekable", None)
        if not callable(seekable) or not seekable():
            return UNSIGNED_PAYLOAD

        start = payload.tell()
        digest = hashlib.sha256()
        for chunk in iter(lambda: payload.read(HASH_CHUNK_SIZE), b""):
            digest.update(chunk)
        payload.seek(start)
        return digest.hexdigest()

    def _string_to_sign(self, amz_date: str, scope: str, canonical_request: str) -> str:
        return "\n".join([
            ALGORITHM,
            amz_date,
            scope,
            hashlib.sha256(canonical_request.encode("utf-8")).hexdigest(),
        ])

    def _signature(self, date_stamp: str, string_to_sign: str) -> str:
        signing_key = self.derive_signing_key(date_stamp)
        return hmac.new(signing_key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

    def sign(
        self,
        method: str,
        path: str,
        query: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        payload: Payload = b"",
        timestamp: Optional[datetime] = None,
        unsigned_payload: bool = False
    ) -> SignedRequest:
        """
        Sign a request with an Authorization header.

        Args:
            method: HTTP method
            path: Raw (unencoded) request path, e.g. /bucket/key
            query: Query parameters
            headers: Headers to sign; must include Host
            payload: Body as bytes/str or a binary file object
            timestamp: Request time (defaults to now, UTC)
            unsigned_payload: Use the UNSIGNED-PAYLOAD sentinel

        Returns:
            SignedRequest whose headers carry x-amz-date,
            x-amz-content-sha256 and Authorization
        """
        moment = to_timestamp(timestamp)
        amz_date = moment.strftime(SIGV4_TIMESTAMP)
        date_stamp = moment.strftime(SIGV4_DATE)

        payload_hash = self.hash_payload(payload, unsigned=unsigned_payload)

        signed = _normalize_headers(headers)
        signed.pop("authorization", None)
        signed["x-amz-date"] = amz_date
        signed["x-amz-content-sha256"] = payload_hash

        header_names = sorted(signed)
        canonical_headers = "".join(f"{name}:{signed[name]}\n" for name in header_names)
        signed_headers = ";".join(header_names)

        c_path = canonical_path(path)
        c_query = canonical_query(query)
        canonical_request = "\n".join([
            method.upper(),
            c_path,
            c_query,
            canonical_headers,
            signed_headers,
            payload_hash,
        ])

        scope = self.credential_scope(date_stamp)
        signature = self._signature(date_stamp, self._string_to_sign(amz_date, scope, canonical_request))

        out_headers = dict(signed)
        out_headers["authorization"] = (
            f"{ALGORITHM} Credential={self.access_key}/{scope}, "
            f"SignedHeaders={signed_headers}, Signature={signature}"
        )

        return SignedRequest(
            method=method.upper(),
            canonical_path=c_path,
            canonical_query=c_query,
            headers=out_headers,
            signed_headers=signed_headers,
            payload_hash=payload_hash,
            amz_date=amz_date,
            signature=signature,
        )

    def presign_url(
        self,
        method: str,
        host: str,
        path: str,
        expires: int,
        timestamp: Optional[datetime] = None,
        scheme: str = "https",
        query: Optional[Mapping[str, str]] = None
    ) -> str:
        """
        Build a query-string-authenticated URL valid for `expires` seconds.

        Only the host header is signed and the payload is UNSIGNED-PAYLOAD,
        which is what S3 expects for presigned URLs.
        """
        moment = to_timestamp(timestamp)
        amz_date = moment.strftime(SIGV4_TIMESTAMP)
        date_stamp = moment.strftime(SIGV4_DATE)
        scope = self.credential_scope(date_stamp)

        params = dict(query or {})
        params.update({
            "X-Amz-Algorithm": ALGORITHM,
            "X-Amz-Credential": f"{self.access_key}/{scope}",
            "X-Amz-Date": amz_date,
            "X-Amz-Expires": str(int(expires)),
            "X-Amz-SignedHeaders": "host",
        })

        c_path = canonical_path(path)
        c_query = canonical_query(params)
        canonical_request = "\n".join([
            method.upper(),
            c_path,
            c_query,
            f"host:{host}\n",
            "host",
            UNSIGNED_PAYLOAD,
        ])
        signature = self._signature(date_stamp, self._string_to_sign(amz_date, scope, canonical_request))

        return f"{scheme}://{host}{c_path}?{c_query}&X-Amz-Signature={signature}"

    def sign_policy(self, policy_b64: str, timestamp: datetime) -> str:
        """Signature for a base64-encoded POST policy document."""
        date_stamp = to_timestamp(timestamp).strftime(SIGV4_DATE)
        return self._signature(date_stamp, policy_b64)
