"""
Request context middleware.

Every request gets a request id (taken from ``X-Request-ID`` when the
caller sends one) bound into the structlog context, so log lines of the
tenant resolver, the guards and the services can be correlated.
"""

import time
import uuid
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings
from app.core.context import clear_request_context, set_request_context

logger = structlog.get_logger(__name__)

# Probes are polled constantly; keep them out of the request log
QUIET_PATHS = frozenset({"/health/live", "/health/ready", "/metrics"})


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Bind request id, trace id and (once resolved) tenant and user to the request.

    Response headers:
    - ``X-Request-ID``: echo of the caller's id or a generated one
    - ``X-Trace-ID``: distributed trace id
    - ``X-Tenant-ID``: tenant the request was authorized against, if any
    - ``X-Process-Time``: handling time in milliseconds
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        trace_id = request.headers.get("X-Trace-ID") or request_id

        # tenant_id / user_id are filled in by get_current_tenant and get_current_user
        request.state.request_id = request_id
        request.state.trace_id = trace_id
        request.state.tenant_id = None
        request.state.user_id = None

        set_request_context(request_id=request_id, trace_id=trace_id)

        path = request.url.path
        quiet = path in QUIET_PATHS
        started = time.perf_counter()

        if not quiet:
            logger.info(
                "request_started",
                method=request.method,
                path=path,
                tenant_hint=request.headers.get(settings.tenant_header),
                client_host=request.client.host if request.client else None,
            )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                method=request.method,
                path=path,
                duration_ms=_elapsed_ms(started),
                tenant_id=request.state.tenant_id,
                error=str(e),
                exc_info=True,
            )
            raise
        finally:
            clear_request_context()

        duration_ms = _elapsed_ms(started)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Trace-ID"] = trace_id
        response.headers["X-Process-Time"] = str(duration_ms)
        if request.state.tenant_id:
            response.headers["X-Tenant-ID"] = request.state.tenant_id

        if not quiet:
            logger.info(
                "request_completed",
                method=request.method,
                path=path,
                status_code=response.status_code,
                duration_ms=duration_ms,
                tenant_id=request.state.tenant_id,
                user_id=request.state.user_id,
            )

        return response
