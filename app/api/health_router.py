"""
Health check endpoints for monitoring and orchestration.

Provides:
- Liveness probe: Is the app running?
- Readiness probe: Can the app serve traffic?
"""

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.core.cache import BACKEND_ERRORS, cache_manager
from app.core.database import db_manager

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health/live")
async def liveness() -> dict:
    """
    Liveness probe.

    Returns:
        200: Application is running
    """
    return {"status": "alive", "version": settings.app_version}


@router.get("/health/ready")
async def readiness() -> JSONResponse:
    """
    Readiness probe.

    The database is required. Redis only backs caching and rate limiting,
    which both degrade gracefully, so an unreachable Redis is reported but
    does not make the service unready.

    Returns:
        200: Ready to serve traffic
        503: Database unavailable
    """
    checks = {}
    is_ready = True

    try:
        async with db_manager.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = {"status": "healthy"}
    except (SQLAlchemyError, OSError, RuntimeError) as e:
        logger.warning("readiness_database_failed", error=str(e))
        checks["database"] = {"status": "unhealthy", "error": str(e)}
        is_ready = False

    if cache_manager.is_available:
        try:
            await cache_manager.client.ping()
            checks["redis"] = {"status": "healthy"}
        except BACKEND_ERRORS as e:
            logger.warning("readiness_redis_failed", error=str(e))
            checks["redis"] = {"status": "degraded", "error": str(e)}
    else:
        checks["redis"] = {"status": "disabled"}

    status_code = status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE

    return JSONResponse(
        status_code=status_code,
        content={
            "status": "ready" if is_ready else "not_ready",
            "checks": checks,
        }
    )
