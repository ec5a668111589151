"""
Test configuration and fixtures.
Uses in-memory SQLite, an in-memory S3-compatible store behind
httpx.MockTransport and an in-memory Redis double.
"""
import os

# Set test environment before any imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["FALLBACK_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("REDIS_URL", None)
os.environ.pop("STORAGE_ENDPOINT", None)

from typing import AsyncGenerator

import httpx
import pytest
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import AuthenticatedUser
from app.database import create_engine_for, create_session_factory
from app.models.base import Base
from app.models.image_record import ImageRecord  # noqa: F401
from app.models.memory import Memory  # noqa: F401
from app.services.rate_limiter import RateLimiter
from app.storage.gateway import SecureUploadGateway
from app.storage.local_store import LocalFallbackStore
from app.storage.object_store import ObjectStoreClient, ObjectStoreConfig
from app.storage.router import SmartStorageRouter
from app.storage.signer import Signer

from fakes import (
    ACCESS_KEY,
    BUCKET,
    SECRET_KEY,
    TEST_USER_ID,
    FakeRedis,
    FakeS3,
    fake_token_verifier,
)

# ----------------------------------------------------------------------------
# Storage fixtures
# ----------------------------------------------------------------------------

@pytest.fixture
def store_config() -> ObjectStoreConfig:
    return ObjectStoreConfig(
        endpoint="minio.test",
        access_key=ACCESS_KEY,
        secret_key=SECRET_KEY,
        bucket=BUCKET,
        region="us-east-1",
        port=9000,
        use_ssl=False,
        timeout_seconds=5.0,
    )

@pytest.fixture
def fake_s3(store_config: ObjectStoreConfig) -> FakeS3:
    """Store with the test bucket already created."""
    return FakeS3(
        Signer(store_config.access_key, store_config.secret_key, store_config.region),
        buckets={BUCKET: {}},
    )

@pytest.fixture
async def object_store(store_config: ObjectStoreConfig, fake_s3: FakeS3) -> AsyncGenerator[ObjectStoreClient, None]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_s3))
    client = ObjectStoreClient(store_config, http_client=http_client)
    yield client
    await http_client.aclose()

@pytest.fixture
async def local_store() -> AsyncGenerator[LocalFallbackStore, None]:
    store = LocalFallbackStore.from_url("sqlite+aiosqlite:///:memory:")
    await store.init()
    yield store
    await store.close()

@pytest.fixture
def storage_router(local_store: LocalFallbackStore, object_store: ObjectStoreClient) -> SmartStorageRouter:
    return SmartStorageRouter(local_store, object_store, max_file_size=1024 * 1024)

@pytest.fixture
def counter_store() -> FakeRedis:
    return FakeRedis()

@pytest.fixture
def rate_limiter(counter_store: FakeRedis) -> RateLimiter:
    return RateLimiter(counter_store, upload_limit=3, delete_limit=2, window_seconds=3600)

@pytest.fixture
def gateway(object_store: ObjectStoreClient, rate_limiter: RateLimiter) -> SecureUploadGateway:
    return SecureUploadGateway(object_store, rate_limiter, max_file_size=1024 * 1024, expires_in=600)

# ----------------------------------------------------------------------------
# Database and API fixtures
# ----------------------------------------------------------------------------

@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    engine = create_engine_for("sqlite+aiosqlite:///:memory:")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = create_session_factory(engine)
    async with session_maker() as session:
        yield session

    await engine.dispose()

@pytest.fixture
def test_user() -> AuthenticatedUser:
    return AuthenticatedUser(uid=TEST_USER_ID, email=f"{TEST_USER_ID}@example.com")

def get_test_app(
    db_session: AsyncSession,
    storage_router: SmartStorageRouter,
    gateway: SecureUploadGateway,
    object_store: ObjectStoreClient,
    rate_limiter: RateLimiter
) -> FastAPI:
    """Create a test FastAPI app with overridden dependencies."""
    from app.main import app
    from app.database import get_db
    from app.auth.dependencies import get_token_verifier

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_verifier] = lambda: fake_token_verifier

    # ASGITransport does not run the lifespan; install components directly
    app.state.object_store = object_store
    app.state.rate_limiter = rate_limiter
    app.state.storage_router = storage_router
    app.state.gateway = gateway

    return app

@pytest.fixture(scope="function")
async def app(db_session, storage_router, gateway, object_store, rate_limiter) -> AsyncGenerator[FastAPI, None]:
    test_app = get_test_app(db_session, storage_router, gateway, object_store, rate_limiter)
    yield test_app
    test_app.dependency_overrides.clear()

@pytest.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client authenticated as TEST_USER_ID."""
    transport = ASGITransport(app=app)
    headers = {"Authorization": f"Bearer token-{TEST_USER_ID}"}
    async with AsyncClient(transport=transport, base_url="http://test", headers=headers) as ac:
        yield ac

@pytest.fixture(scope="function")
async def anon_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client without an Authorization header."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
