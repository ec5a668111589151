"""
Business logic services.
"""
from app.services.image_service import ImageService
from app.services.memory_service import MemoryService
from app.services.rate_limiter import OperationClass, RateLimiter

__all__ = [
    "ImageService",
    "MemoryService",
    "OperationClass",
    "RateLimiter",
]
