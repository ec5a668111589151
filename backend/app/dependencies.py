"""
FastAPI dependencies for storage components.

Components are built once in the application lifespan and kept on
app.state; handlers reach them through these functions so tests can swap
any of them with app.dependency_overrides.
"""
from typing import Optional

from fastapi import Request

from app.services.rate_limiter import RateLimiter
from app.storage.gateway import SecureUploadGateway
from app.storage.object_store import ObjectStoreClient
from app.storage.router import SmartStorageRouter


def get_object_store(request: Request) -> Optional[ObjectStoreClient]:
    return getattr(request.app.state, "object_store", None)


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_storage_router(request: Request) -> SmartStorageRouter:
    return request.app.state.storage_router


def get_gateway(request: Request) -> SecureUploadGateway:
    return request.app.state.gateway
