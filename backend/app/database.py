"""
Database configuration and session management.
Uses SQLAlchemy async engine: PostgreSQL (asyncpg) in production,
SQLite (aiosqlite) for development and tests.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import settings
from app.models.base import Base

logger = logging.getLogger(__name__)


def create_engine_for(database_url: str) -> AsyncEngine:
    """Build an async engine with pool settings suited to the backend."""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url:
            kwargs["poolclass"] = StaticPool
        return create_async_engine(database_url, echo=False, **kwargs)

    return create_async_engine(
        database_url,
        echo=False,  # Disable SQLAlchemy query logging
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Create async engine
engine = create_engine_for(settings.database_url)

# Create async session factory
AsyncSessionLocal = create_session_factory(engine)


async def get_db() -> AsyncSession:
    """
    Dependency for FastAPI routes to get database session.
    Usage: db: AsyncSession = Depends(get_db)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: AsyncEngine = None):
    """
    Initialize database: create tables.
    Called on application startup.
    """
    # Register models on Base.metadata
    from app.models.image_record import ImageRecord  # noqa: F401
    from app.models.memory import Memory  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")
