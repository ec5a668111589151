"""
ASGI middleware for tracking HTTP request metrics.
Records request count, duration, and errors.
"""
import re
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from app.utils.metrics import http_requests_total, http_request_duration_seconds, errors_total

_UUID = re.compile(r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}', re.IGNORECASE)
_NUMERIC_SEGMENT = re.compile(r'/\d+(?=/|$)')

# Paths excluded from metrics (scrape endpoint itself)
SKIP_PATHS = {"/metrics"}


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to track HTTP metrics for Prometheus."""

    async def dispatch(self, request: Request, call_next):
        """Process request and record metrics."""
        if request.url.path in SKIP_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        method = request.method

        try:
            response = await call_next(request)
        except Exception:
            errors_total.labels(error_type="exception").inc()
            raise

        # Route template is only known after routing ran
        path = self._route_path(request)
        status_code = response.status_code

        http_requests_total.labels(
            method=method,
            path=path,
            status=status_code
        ).inc()
        http_request_duration_seconds.labels(
            method=method,
            path=path
        ).observe(time.perf_counter() - start_time)

        # Track errors (4xx and 5xx)
        if status_code >= 400:
            errors_total.labels(error_type=f"{status_code // 100}xx").inc()

        return response

    def _route_path(self, request: Request) -> str:
        """
        Path label with low cardinality.
        Uses the matched route template (/api/images/{image_id}), otherwise
        replaces UUIDs and numeric IDs with placeholders.
        """
        route = request.scope.get("route")
        template = getattr(route, "path", None)
        if template:
            return template

        path = _UUID.sub('{id}', request.url.path)
        return _NUMERIC_SEGMENT.sub('/{id}', path)
