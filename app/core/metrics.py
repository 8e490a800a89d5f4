"""
Prometheus series exported on ``/metrics``.

HTTP traffic is labelled by route template, never by raw path, so ids in
URLs do not blow up cardinality. Authentication and authorization series
count outcomes only; user and tenant ids belong in logs.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings

build_info = Info("storegate_build", "StoreGate IAM build information")
build_info.info({"version": settings.app_version, "environment": settings.environment})

# HTTP
http_requests_total = Counter(
    "http_requests_total",
    "HTTP requests by route and status",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

http_requests_in_progress = Gauge(
    "http_requests_in_progress",
    "HTTP requests currently being handled",
    ["method"],
)

# Authentication
login_attempts_total = Counter(
    "iam_login_attempts_total",
    "Password logins by outcome (success, invalid, inactive)",
    ["outcome"],
)

token_refresh_total = Counter(
    "iam_token_refresh_total",
    "Refresh token exchanges by outcome",
    ["outcome"],
)

# Authorization
authorization_checks_total = Counter(
    "iam_authorization_checks_total",
    "Route guard decisions",
    ["guard", "decision"],
)

rbac_mutations_total = Counter(
    "iam_rbac_mutations_total",
    "Role, permission and binding changes",
    ["operation"],
)

operation_duration_seconds = Histogram(
    "iam_operation_duration_seconds",
    "Duration of multi-step domain operations",
    ["operation", "outcome"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# Cache
cache_operations_total = Counter(
    "iam_cache_operations_total",
    "Cache lookups and writes",
    ["operation", "hit"],
)

cache_operation_duration_seconds = Histogram(
    "iam_cache_operation_duration_seconds",
    "Redis round-trip time",
    ["operation"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1),
)
