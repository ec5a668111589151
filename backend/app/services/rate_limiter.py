"""
Per-owner rate limiting backed by Redis.

Fixed window counters, one per owner per operation class:
    upload-limit:<uid>   (default 50 per hour)
    delete-limit:<uid>   (default 20 per hour)

Every check increments first (INCR and TTL in one MULTI/EXEC) and rejects
once the count passes the ceiling. A counter found without an expiry gets
one, so no key outlives its window. If Redis is not configured or fails,
requests are allowed (fail-open).
"""
import enum
import logging
from typing import Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from app.errors import RateLimited
from app.utils.metrics import rate_limit_fail_open_total

logger = logging.getLogger(__name__)


class OperationClass(str, enum.Enum):
    UPLOAD = "upload"
    DELETE = "delete"


class RateLimiter:
    """Fixed window counter per owner and operation class."""

    def __init__(
        self,
        client: Optional[aioredis.Redis],
        upload_limit: int = 50,
        delete_limit: int = 20,
        window_seconds: int = 3600
    ):
        self.client = client
        self.window_seconds = window_seconds
        self.limits = {
            OperationClass.UPLOAD: upload_limit,
            OperationClass.DELETE: delete_limit,
        }

    @classmethod
    def from_settings(cls, settings) -> "RateLimiter":
        client = None
        if settings.redis_url:
            client = aioredis.from_url(settings.redis_url, decode_responses=True)
        else:
            logger.warning("REDIS_URL not set, rate limiting is disabled")
        return cls(
            client,
            upload_limit=settings.upload_rate_limit,
            delete_limit=settings.delete_rate_limit,
            window_seconds=settings.rate_limit_window_seconds,
        )

    @property
    def enabled(self) -> bool:
        return self.client is not None

    @staticmethod
    def key_for(owner_id: str, operation: OperationClass) -> str:
        return f"{operation.value}-limit:{owner_id}"

    async def check(self, owner_id: str, operation: OperationClass) -> None:
        """
        Count one operation for an owner.

        Raises:
            RateLimited: The owner already reached the ceiling in this window
        """
        if self.client is None:
            return

        key = self.key_for(owner_id, operation)
        limit = self.limits[operation]

        try:
            async with self.client.pipeline(transaction=True) as pipe:
                count, ttl = await pipe.incr(key).ttl(key).execute()

            # -1: key exists without expiry (first hit, or left behind by a crash)
            if ttl == -1:
                await self.client.expire(key, self.window_seconds)
                ttl = self.window_seconds

            if int(count) > limit:
                raise RateLimited(
                    "Rate limit exceeded. Please try again later.",
                    retry_after=ttl if ttl > 0 else self.window_seconds
                )

        except RedisError as e:
            rate_limit_fail_open_total.inc()
            logger.error(
                f"Rate limit check failed, allowing request: {e}",
                extra={"event": "rate_limit_fail_open", "user_id": owner_id, "operation": operation.value}
            )

    async def ping(self) -> bool:
        if self.client is None:
            return False
        return bool(await self.client.ping())

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
