"""
Request and operation timing.

``track_http_metrics`` feeds the HTTP Prometheus series from the app's
``http`` middleware; ``timed_operation`` wraps slower domain operations
(tenant bootstrap, bulk rebinds) with a duration histogram and a log line.
"""

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable

import structlog
from fastapi import Request

from app.core.metrics import (
    http_request_duration_seconds,
    http_requests_in_progress,
    http_requests_total,
    operation_duration_seconds,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def timed_operation(operation: str, **tags: Any) -> AsyncIterator[None]:
    """
    Time a named operation.

    Usage:
        async with timed_operation("tenant_bootstrap", tenant_id=tenant_id):
            ...
    """
    started = time.perf_counter()
    outcome = "ok"
    try:
        yield
    except Exception as e:
        outcome = "error"
        logger.error(
            "operation_failed",
            operation=operation,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            error=str(e),
            **tags,
        )
        raise
    finally:
        elapsed = time.perf_counter() - started
        operation_duration_seconds.labels(operation=operation, outcome=outcome).observe(elapsed)

    logger.info("operation_completed", operation=operation, duration_ms=round(elapsed * 1000, 2), **tags)


def _endpoint_label(request: Request) -> str:
    # Route template keeps label cardinality bounded (/roles/{role_id})
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


async def track_http_metrics(request: Request, call_next: Callable):
    """Count, time and gauge HTTP requests by method and route template."""
    method = request.method
    in_progress = http_requests_in_progress.labels(method=method)
    in_progress.inc()
    started = time.perf_counter()

    try:
        response = await call_next(request)
    finally:
        in_progress.dec()

    endpoint = _endpoint_label(request)
    http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(
        time.perf_counter() - started
    )
    http_requests_total.labels(method=method, endpoint=endpoint, status_code=response.status_code).inc()
    return response
