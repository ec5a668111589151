"""
FastAPI application entry point.
Sets up the API with lifespan events that build the storage components.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from app.config import settings
from app.database import init_db
from app.api.router import api_router
from app.auth.firebase import initialize_firebase
from app.errors import GatewayError, gateway_exception_handler, request_validation_handler
from app.middleware.metrics_middleware import MetricsMiddleware
from app.services.rate_limiter import RateLimiter
from app.storage.gateway import SecureUploadGateway
from app.storage.local_store import LocalFallbackStore
from app.storage.object_store import ObjectStoreClient, ObjectStoreConfig
from app.storage.router import SmartStorageRouter
from app.utils.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup/shutdown events.
    - Startup: database tables, Firebase Admin SDK, storage components
    - Shutdown: close HTTP, Redis and fallback database connections
    """
    # Configure structured JSON logging
    configure_logging('dayli-api', settings.log_level)

    # Startup
    await init_db()

    # Initialize Firebase Admin SDK for JWT verification
    # Skip if Firebase config not provided (for local dev without Firebase)
    try:
        initialize_firebase(settings.firebase_project_id, settings.firebase_credentials_json)
    except Exception as e:
        # In production, this should fail fast
        if settings.environment == "production":
            raise
        logger.warning(f"Firebase initialization failed: {e}")

    store_config = ObjectStoreConfig.from_settings(settings)
    object_store = ObjectStoreClient(store_config) if store_config else None
    if object_store is None:
        logger.warning("Object storage not configured, uploads will use local fallback storage")

    local_store = LocalFallbackStore.from_url(settings.fallback_database_url)
    await local_store.init()

    rate_limiter = RateLimiter.from_settings(settings)

    app.state.object_store = object_store
    app.state.rate_limiter = rate_limiter
    app.state.storage_router = SmartStorageRouter(
        local_store,
        object_store,
        max_file_size=settings.max_file_size,
    )
    app.state.gateway = SecureUploadGateway(
        object_store,
        rate_limiter,
        max_file_size=settings.max_file_size,
        expires_in=settings.presigned_post_expiration,
    )

    if object_store is not None:
        await object_store.ensure_container()

    yield

    # Shutdown
    if object_store is not None:
        await object_store.close()
    await rate_limiter.close()
    await local_store.close()


# Create FastAPI app
app = FastAPI(
    title="Dayli API",
    description="Journal and memories backend with secure object storage",
    version="0.1.0",
    lifespan=lifespan
)

app.add_exception_handler(GatewayError, gateway_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

# CORS middleware (for the web client)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.client_origin == "*" else [settings.client_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Metrics middleware (must be after CORS to track all requests)
app.add_middleware(MetricsMiddleware)

# Include API routes
app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Dayli API",
        "version": "0.1.0",
        "environment": settings.environment
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
