"""
Firebase Admin SDK initialization and token verification.

The identity verifier is an opaque capability for the rest of the app:
"verify token -> uid". Initialization happens once in the application
lifespan; tests replace the verifier through a FastAPI dependency override.
"""
import json
import os
import logging
from typing import Optional
import firebase_admin
from firebase_admin import credentials, auth
from fastapi.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)


# Firebase app instance, set by initialize_firebase()
_firebase_app: Optional[firebase_admin.App] = None


def _load_credentials(credentials_json: Optional[str]) -> credentials.Base:
    """
    Resolve FIREBASE_CREDENTIALS_JSON into a credential object.

    Accepts a file path (absolute, or relative to backend/) or an inline
    JSON string. Falls back to application default credentials.
    """
    if not credentials_json:
        return credentials.ApplicationDefault()

    candidates = [credentials_json]
    if not os.path.isabs(credentials_json):
        backend_dir = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
        candidates.insert(0, os.path.join(backend_dir, credentials_json))

    for path in candidates:
        if os.path.exists(path):
            logger.info(f"Loaded Firebase credentials from file: {path}")
            return credentials.Certificate(path)

    try:
        cred_dict = json.loads(credentials_json)
    except json.JSONDecodeError:
        raise ValueError(
            "FIREBASE_CREDENTIALS_JSON must be a valid file path or JSON string"
        )
    logger.info("Loaded Firebase credentials from JSON string")
    return credentials.Certificate(cred_dict)


def initialize_firebase(project_id: Optional[str], credentials_json: Optional[str] = None) -> bool:
    """
    Initialize Firebase Admin SDK once.

    Returns:
        True if the SDK is ready, False if no project id is configured
    """
    global _firebase_app

    if _firebase_app is not None:
        return True

    if not project_id:
        logger.warning("FIREBASE_PROJECT_ID not set, token verification is unavailable")
        return False

    _firebase_app = firebase_admin.initialize_app(
        _load_credentials(credentials_json),
        {"projectId": project_id}
    )
    logger.info(f"Firebase Admin SDK initialized for project {project_id}")
    return True


def verify_firebase_token(token: str) -> dict:
    """
    Verify Firebase ID token and return decoded token claims.

    Checks signature, expiration, issuer and audience.

    Raises:
        ValueError: If token is invalid, expired, or revoked
        RuntimeError: If the SDK was never initialized
    """
    if _firebase_app is None:
        raise RuntimeError("Firebase Admin SDK not initialized. Call initialize_firebase() first.")

    try:
        return auth.verify_id_token(token, app=_firebase_app)
    except ValueError:
        raise
    except (auth.InvalidIdTokenError, auth.ExpiredIdTokenError, auth.RevokedIdTokenError,
            auth.CertificateFetchError) as e:
        raise ValueError(f"Token verification failed: {e}") from e


class FirebaseTokenVerifier:
    """Async wrapper returning the caller's uid and email for a bearer token."""

    async def __call__(self, token: str) -> dict:
        # verify_id_token may fetch Google's public keys over the network
        return await run_in_threadpool(verify_firebase_token, token)
