"""
Errors raised at the HTTP trust boundary.

Every error carries the status code and a human-readable reason that is
returned to the client as {"error": reason}. Nothing secret goes into the
reason string.
"""
from typing import Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class GatewayError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class AuthenticationFailure(GatewayError):
    """Missing, invalid or expired bearer token."""
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationFailure(GatewayError):
    """Caller is authenticated but does not own the resource."""
    status_code = status.HTTP_403_FORBIDDEN


class ValidationFailure(GatewayError):
    """Missing field, bad MIME/extension combination, oversize file."""
    status_code = status.HTTP_400_BAD_REQUEST


class RateLimited(GatewayError):
    """Per-owner operation ceiling reached for the current window."""
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, reason: str, retry_after: Optional[int] = None):
        super().__init__(reason)
        self.retry_after = retry_after


class ObjectNotFound(GatewayError):
    status_code = status.HTTP_404_NOT_FOUND


class StorageFailure(GatewayError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


async def gateway_exception_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """Render gateway errors in the {"error": ...} shape clients expect."""
    headers = None
    if isinstance(exc, RateLimited) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}
    elif isinstance(exc, AuthenticationFailure):
        headers = {"WWW-Authenticate": "Bearer"}

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.reason},
        headers=headers
    )


class UpstreamFailure(GatewayError):
    """A storage backend failed during an operation that cannot fall back."""
    status_code = status.HTTP_502_BAD_GATEWAY


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies get the same {"error": ...} shape as gateway rejections."""
    fields = [".".join(str(part) for part in err.get("loc", ())[1:]) for err in exc.errors()]
    reason = "Invalid request"
    if fields:
        reason = f"Invalid or missing fields: {', '.join(f for f in fields if f) or 'body'}"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": reason})
