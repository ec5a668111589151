"""
Storage module for S3-compatible object storage with a local fallback.

Remote objects are written through ObjectStoreClient (SigV4 over httpx);
when the store is unreachable SmartStorageRouter keeps the upload in the
LocalFallbackStore instead. Browser uploads go directly to the store using
presigned POST policies issued by SecureUploadGateway.
"""
from app.storage.object_store import ObjectStoreClient, ObjectStoreConfig
from app.storage.local_store import LocalFallbackStore
from app.storage.router import SmartStorageRouter
from app.storage.gateway import SecureUploadGateway, PresignedPost
from app.storage.references import Backend, StoredObjectReference, parse_reference
from app.storage.signer import Signer, SignedRequest
from app.storage.types import FileUpload, ObjectMetadata

__all__ = [
    "ObjectStoreClient",
    "ObjectStoreConfig",
    "LocalFallbackStore",
    "SmartStorageRouter",
    "SecureUploadGateway",
    "PresignedPost",
    "Backend",
    "StoredObjectReference",
    "parse_reference",
    "Signer",
    "SignedRequest",
    "FileUpload",
    "ObjectMetadata",
]
