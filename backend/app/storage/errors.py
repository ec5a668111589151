"""
Exception hierarchy for the storage layer.

Object store failures are split by cause so callers can decide what to do:
auth and malformed-request errors point at configuration bugs, while
StoreUnavailableError covers anything transient (network, timeout, 5xx).
The router treats every one of them as a reason to fall back to local storage.
"""
from typing import Optional


class StorageError(Exception):
    """Base exception for storage errors."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.key = key


class ObjectStoreError(StorageError):
    """Non-2xx response or transport failure from the object store."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        status_code: Optional[int] = None,
        code: Optional[str] = None
    ):
        super().__init__(message, key)
        self.status_code = status_code
        self.code = code


class StoreAuthError(ObjectStoreError):
    """Store rejected the credentials or the signature (401/403)."""


class ContainerNotFoundError(ObjectStoreError):
    """Bucket does not exist (404 NoSuchBucket)."""


class ObjectMissingError(ObjectStoreError):
    """Object does not exist (404 on an object key)."""


class MalformedRequestError(ObjectStoreError):
    """Store could not parse the request (400)."""


class StoreUnavailableError(ObjectStoreError):
    """Network unreachable, timed out, or a 5xx from the store."""


class LocalStoreError(StorageError):
    """Local fallback store could not read or write a blob."""


class InvalidReferenceError(StorageError):
    """A stored object reference matches neither backend."""


class UploadFailedError(StorageError):
    """Both the remote store and the local fallback failed."""


class InvalidUploadError(StorageError):
    """File rejected before any backend was tried (type or size)."""


class OwnershipError(StorageError):
    """Stored owner metadata does not match the caller."""
