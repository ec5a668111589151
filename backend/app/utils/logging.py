"""
Production logging utility for structured JSON logging.

Provides event-specific logging functions with mandatory fields:
- timestamp (ISO8601)
- level
- service
- event

Optional fields (included when applicable):
- user_id
- operation
- object_key
- backend
- duration_ms

Secret material (storage secret key, signing keys, signatures, bearer
tokens) must never be passed to these helpers.

Usage:
    from app.utils.logging import configure_logging, log_upload_stored

    configure_logging('dayli-api', 'INFO')
    log_upload_stored(logger, user_id='uid', object_key='memories/uid/x.jpg', backend='remote')
"""
import logging
import sys
from typing import Optional, Dict, Any
from pythonjsonlogger import jsonlogger


class StructuredLogger:
    """Structured JSON logger with mandatory fields."""

    _service_name = None
    _configured = False

    @classmethod
    def configure(cls, service_name: str, log_level: str = "INFO"):
        """
        Configure structured JSON logging for the application.

        Args:
            service_name: Service identifier (dayli-api)
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        if cls._configured:
            return  # Already configured

        cls._service_name = service_name

        # Remove default handlers
        root_logger = logging.getLogger()
        root_logger.handlers = []

        # Create JSON formatter
        formatter = jsonlogger.JsonFormatter(
            '%(timestamp)s %(levelname)s %(name)s %(message)s',
            timestamp=True,
            json_ensure_ascii=False
        )

        # Create console handler (for docker logs)
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)

        # Configure root logger
        root_logger.addHandler(handler)
        root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        # Add service name to all log records via filter
        class ServiceFilter(logging.Filter):
            def filter(self, record):
                record.service = cls._service_name
                return True

        handler.addFilter(ServiceFilter())
        cls._configured = True


def _build_log_extra(
    event: str,
    user_id: Optional[str] = None,
    operation: Optional[str] = None,
    object_key: Optional[str] = None,
    backend: Optional[str] = None,
    duration_ms: Optional[float] = None,
    **kwargs
) -> Dict[str, Any]:
    """
    Build extra fields for structured logging.

    Args:
        event: Event name (mandatory)
        user_id: Optional owner / caller id
        operation: Optional operation (upload, delete, get)
        object_key: Optional object key or local reference
        backend: Optional backend (remote, local)
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields

    Returns:
        Dictionary of extra fields
    """
    extra = {
        "event": event,
        **kwargs
    }

    if user_id:
        extra["user_id"] = user_id
    if operation:
        extra["operation"] = operation
    if object_key:
        extra["object_key"] = object_key
    if backend:
        extra["backend"] = backend
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)

    return extra


# Storage event functions

def log_upload_stored(
    logger: logging.Logger,
    user_id: str,
    object_key: str,
    backend: str,
    duration_ms: Optional[float] = None,
    size: Optional[int] = None,
    **kwargs
):
    """
    Log a successful upload.

    Args:
        logger: Logger instance
        user_id: Owner id (required)
        object_key: Object key or local reference (required)
        backend: remote or local (required)
        duration_ms: Optional duration in milliseconds
        size: Optional size in bytes
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="upload_stored",
        user_id=user_id,
        operation="upload",
        object_key=object_key,
        backend=backend,
        duration_ms=duration_ms,
        **kwargs
    )
    if size is not None:
        extra["size"] = size

    logger.info(f"Upload stored ({backend}): {object_key}", extra=extra)


def log_storage_fallback(
    logger: logging.Logger,
    user_id: Optional[str],
    operation: str,
    error: str,
    **kwargs
):
    """
    Log a remote store failure that is being retried on local storage.

    Args:
        logger: Logger instance
        user_id: Owner id
        operation: Operation that failed remotely (required)
        error: Error message (required)
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="storage_fallback",
        user_id=user_id,
        operation=operation,
        backend="local",
        error=str(error),
        **kwargs
    )

    logger.warning(f"Object store unavailable, falling back to local storage: {error}", extra=extra)


def log_object_deleted(
    logger: logging.Logger,
    user_id: Optional[str],
    object_key: str,
    backend: str,
    **kwargs
):
    """Log a confirmed delete (including already-gone objects)."""
    extra = _build_log_extra(
        event="object_deleted",
        user_id=user_id,
        operation="delete",
        object_key=object_key,
        backend=backend,
        **kwargs
    )

    logger.info(f"Object deleted ({backend}): {object_key}", extra=extra)


def log_credential_issued(
    logger: logging.Logger,
    user_id: str,
    object_key: str,
    upload_type: str,
    expires_in: int,
    **kwargs
):
    """Log issuance of a presigned POST policy."""
    extra = _build_log_extra(
        event="upload_credential_issued",
        user_id=user_id,
        operation="upload",
        object_key=object_key,
        upload_type=upload_type,
        expires_in=expires_in,
        **kwargs
    )

    logger.info(f"Upload credential issued: {object_key}", extra=extra)


def log_security_event(
    logger: logging.Logger,
    reason: str,
    user_id: Optional[str] = None,
    operation: Optional[str] = None,
    object_key: Optional[str] = None,
    **kwargs
):
    """
    Log a security-relevant rejection (ownership mismatch, forbidden type,
    failed authentication, rate limit).

    Args:
        logger: Logger instance
        reason: Why the request was rejected (required)
        user_id: Authenticated caller, if known
        operation: upload or delete
        object_key: Key the caller tried to act on
        **kwargs: Additional fields (claimed_user_id, status_code, ...)
    """
    extra = _build_log_extra(
        event="security_event",
        user_id=user_id,
        operation=operation,
        object_key=object_key,
        reason=reason,
        **kwargs
    )

    logger.warning(f"Security event: {reason}", extra=extra)


def log_store_failure(
    logger: logging.Logger,
    operation: str,
    error: str,
    user_id: Optional[str] = None,
    object_key: Optional[str] = None,
    include_traceback: bool = False,
    **kwargs
):
    """
    Log an object store failure that is surfaced to the caller.

    Args:
        logger: Logger instance
        operation: Operation name (required)
        error: Error message (required)
        user_id: Optional caller id
        object_key: Optional object key
        include_traceback: Whether to include stack trace
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="store_failure",
        user_id=user_id,
        operation=operation,
        object_key=object_key,
        backend="remote",
        error=str(error),
        **kwargs
    )

    message = f"Storage failure: {operation} - {error}"

    if include_traceback and sys.exc_info()[0] is not None:
        logger.error(message, extra=extra, exc_info=True)
    else:
        logger.error(message, extra=extra)


# Convenience alias
def configure_logging(service_name: str, log_level: str = "INFO"):
    """Configure logging (alias for StructuredLogger.configure)."""
    StructuredLogger.configure(service_name, log_level)
