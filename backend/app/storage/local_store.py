"""
Local fallback blob store.

Used only when the remote object store is unreachable, so development and
offline usage do not hard-fail. Blobs are kept as self-contained data URIs
in an embedded database (SQLite through SQLAlchemy async) and addressed by
opaque references of the form local://<id>.

This store is NOT authoritative and NOT shared between devices or
deployments. Any local reference that outlives the session is a data-loss
risk; every write is logged as a warning so it shows up in production logs.
"""
import base64
import logging
import secrets
from typing import Optional, Tuple

from sqlalchemy import Column, DateTime, Integer, String, Text, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func

from app.storage.errors import InvalidReferenceError, LocalStoreError
from app.storage.keys import next_timestamp_ms, sanitize_filename
from app.storage.types import ObjectMetadata

logger = logging.getLogger(__name__)

LOCAL_SCHEME = "local://"


class FallbackBase(DeclarativeBase):
    """Separate metadata so fallback tables never land in the record store."""
    pass


class FallbackBlob(FallbackBase):
    """A blob stored locally while the object store was unavailable."""
    __tablename__ = "fallback_blobs"

    id = Column(String(128), primary_key=True)
    upload_type = Column(String(64), nullable=False)
    owner_id = Column(String(128), nullable=True, index=True)
    original_name = Column(String(255), nullable=True)
    mime_type = Column(String(128), nullable=False)
    size = Column(Integer, nullable=False)
    data = Column(Text, nullable=False)  # data:<mime>;base64,<payload>
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<FallbackBlob(id={self.id}, type={self.upload_type}, size={self.size})>"


def to_data_uri(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def from_data_uri(uri: str) -> Tuple[str, bytes]:
    """Split a base64 data URI into (mime_type, bytes)."""
    if not uri.startswith("data:") or ";base64," not in uri:
        raise ValueError("Not a base64 data URI")
    header, payload = uri[len("data:"):].split(";base64,", 1)
    return header, base64.b64decode(payload)


def is_local_ref(ref: str) -> bool:
    return ref.startswith(LOCAL_SCHEME)


def blob_id_from_ref(ref: str) -> str:
    if not is_local_ref(ref) or len(ref) == len(LOCAL_SCHEME):
        raise InvalidReferenceError(f"Not a local reference: {ref}")
    return ref[len(LOCAL_SCHEME):]


class LocalFallbackStore:
    """Embedded key/value blob store returning local:// references."""

    def __init__(self, session_factory: async_sessionmaker, engine: Optional[AsyncEngine] = None):
        self._session_factory = session_factory
        self._engine = engine

    @classmethod
    def from_url(cls, database_url: str) -> "LocalFallbackStore":
        """Create a store with its own engine (SQLite file or in-memory)."""
        kwargs = {"echo": False}
        if database_url.startswith("sqlite") and ":memory:" in database_url:
            # Single shared connection, otherwise every connection gets its own empty DB
            kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
        engine = create_async_engine(database_url, **kwargs)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        return cls(session_factory, engine)

    async def init(self) -> None:
        """Create the blob table if needed."""
        if self._engine is None:
            return
        async with self._engine.begin() as conn:
            await conn.run_sync(FallbackBase.metadata.create_all)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    async def put(
        self,
        data: bytes,
        mime_type: str,
        upload_type: str,
        filename: Optional[str] = None,
        owner_id: Optional[str] = None
    ) -> str:
        """
        Store a blob and return its local reference.

        Raises:
            LocalStoreError: If the embedded database write fails
        """
        blob_id = f"{upload_type}_{next_timestamp_ms()}_{secrets.token_hex(6)}"
        blob = FallbackBlob(
            id=blob_id,
            upload_type=upload_type,
            owner_id=owner_id,
            original_name=sanitize_filename(filename) if filename else None,
            mime_type=mime_type,
            size=len(data),
            data=to_data_uri(data, mime_type),
        )

        try:
            async with self._session_factory() as session:
                session.add(blob)
                await session.commit()
        except SQLAlchemyError as e:
            raise LocalStoreError(f"Failed to store file locally: {e}", key=blob_id) from e

        ref = f"{LOCAL_SCHEME}{blob_id}"
        logger.warning(
            f"Stored {ref} in local fallback storage; it is not replicated and "
            f"will be lost if this node's database is discarded",
            extra={"event": "local_blob_stored", "user_id": owner_id, "backend": "local"}
        )
        return ref

    async def get(self, ref: str) -> Optional[str]:
        """Return the blob as a data URI, or None if it does not exist."""
        blob_id = blob_id_from_ref(ref)
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(FallbackBlob.data).where(FallbackBlob.id == blob_id)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise LocalStoreError(f"Failed to read local file: {e}", key=blob_id) from e

    async def head(self, ref: str) -> Optional[ObjectMetadata]:
        """Metadata of a blob, or None if it does not exist."""
        blob_id = blob_id_from_ref(ref)
        try:
            async with self._session_factory() as session:
                blob = await session.get(FallbackBlob, blob_id)
        except SQLAlchemyError as e:
            raise LocalStoreError(f"Failed to read local file: {e}", key=blob_id) from e

        if blob is None:
            return None
        return ObjectMetadata(
            owner_id=blob.owner_id,
            upload_type=blob.upload_type,
            original_name=blob.original_name,
            content_type=blob.mime_type,
            size=blob.size,
        )

    async def remove(self, ref: str) -> None:
        """Delete a blob. Already-gone blobs are not an error."""
        blob_id = blob_id_from_ref(ref)
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(FallbackBlob).where(FallbackBlob.id == blob_id)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise LocalStoreError(f"Failed to delete local file: {e}", key=blob_id) from e

        if result.rowcount == 0:
            logger.debug(f"Local blob {blob_id} not found (already deleted)")
        else:
            logger.debug(f"Deleted local blob {blob_id}")
