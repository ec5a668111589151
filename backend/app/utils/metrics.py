"""
Prometheus metrics definitions for the API.
All metrics are registered here and can be imported by other modules.
"""
from prometheus_client import Counter, Histogram

# HTTP request metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'path', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'path'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Error metrics
errors_total = Counter(
    'errors_total',
    'Total errors',
    ['error_type']
)

# Storage metrics
storage_uploads_total = Counter(
    'storage_uploads_total',
    'Total uploads stored, by backend',
    ['backend']
)

storage_fallbacks_total = Counter(
    'storage_fallbacks_total',
    'Uploads that fell back to local storage after a remote failure'
)

storage_deletes_total = Counter(
    'storage_deletes_total',
    'Total delete attempts, by backend and outcome',
    ['backend', 'outcome']
)

storage_request_duration_seconds = Histogram(
    'storage_request_duration_seconds',
    'Router operation duration in seconds',
    ['operation', 'backend'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

# Gateway metrics
gateway_rejections_total = Counter(
    'gateway_rejections_total',
    'Requests rejected by the upload gateway',
    ['operation', 'reason']
)

upload_credentials_issued_total = Counter(
    'upload_credentials_issued_total',
    'Presigned POST policies issued',
    ['upload_type']
)

rate_limit_fail_open_total = Counter(
    'rate_limit_fail_open_total',
    'Requests allowed because the counter store was unavailable'
)
