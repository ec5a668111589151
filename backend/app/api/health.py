"""
Health check endpoint.
Verifies database, Redis and object store connectivity.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from typing import Optional

from app.database import get_db
from app.dependencies import get_object_store, get_rate_limiter
from app.services.rate_limiter import RateLimiter
from app.storage.object_store import ObjectStoreClient

router = APIRouter()


@router.get("")
async def health_check(
    db: AsyncSession = Depends(get_db),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    object_store: Optional[ObjectStoreClient] = Depends(get_object_store)
):
    """
    Health check endpoint.

    The database and Redis decide healthy/unhealthy. An unreachable object
    store only degrades the service, since uploads fall back to local
    storage.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "redis": "disabled",
        "object_store": "not configured"
    }

    # Check database
    try:
        await db.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except Exception as e:
        health_status["database"] = f"error: {str(e)}"
        health_status["status"] = "unhealthy"

    # Check Redis
    if rate_limiter.enabled:
        try:
            await rate_limiter.ping()
            health_status["redis"] = "connected"
        except Exception as e:
            health_status["redis"] = f"error: {str(e)}"
            health_status["status"] = "unhealthy"

    # Check object store
    if object_store is not None:
        try:
            exists = await object_store.container_exists()
            health_status["object_store"] = "connected" if exists else "bucket missing"
        except Exception as e:
            health_status["object_store"] = f"error: {str(e)}"
        if health_status["object_store"] != "connected" and health_status["status"] == "healthy":
            health_status["status"] = "degraded"

    if health_status["status"] == "unhealthy":
        raise HTTPException(status_code=503, detail=health_status)

    return health_status
