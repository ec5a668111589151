"""
FastAPI dependencies for authentication.
Provides get_current_user dependency that verifies Firebase JWT tokens.
"""
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.auth.firebase import FirebaseTokenVerifier
from app.errors import AuthenticationFailure
from app.utils.logging import log_security_event

logger = logging.getLogger(__name__)

# auto_error=False so a missing header is answered with our own 401 body
security = HTTPBearer(auto_error=False)

TokenVerifier = Callable[[str], Awaitable[dict]]

_verifier = FirebaseTokenVerifier()


@dataclass
class AuthenticatedUser:
    """Identity extracted from a verified token."""
    uid: str
    email: Optional[str] = None


def get_token_verifier() -> TokenVerifier:
    """Identity verifier collaborator; overridden in tests."""
    return _verifier


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    verify: TokenVerifier = Depends(get_token_verifier)
) -> AuthenticatedUser:
    """
    FastAPI dependency that verifies the bearer token and returns the caller.

    Flow:
    1. Extract Bearer token from Authorization header
    2. Verify token with the identity verifier
    3. Extract uid and email from token claims

    Raises:
        AuthenticationFailure: If token is missing, invalid, or expired
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationFailure("Unauthorized: Missing or invalid token")

    try:
        decoded_token = await verify(credentials.credentials)
    except (ValueError, RuntimeError) as e:
        # Never log the token itself
        log_security_event(logger, reason="token_verification_failed", error=str(e))
        raise AuthenticationFailure("Unauthorized: Invalid token") from e

    uid = decoded_token.get("uid")
    if not uid:
        raise AuthenticationFailure("Unauthorized: Invalid token")

    return AuthenticatedUser(uid=uid, email=decoded_token.get("email"))
