"""
FastAPI application factory.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.core.cache import BACKEND_ERRORS, cache_manager
from app.core.database import db_manager
from app.core.error_tracking import error_tracker
from app.core.exceptions import StoreGateError
from app.core.logging_config import setup_logging, get_logger
from app.core.middleware import RequestContextMiddleware
from app.core.performance import track_http_metrics

# Setup logging first
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan events."""
    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    db_manager.init()

    # Redis only backs caching and rate limiting; run without it if unreachable
    try:
        await cache_manager.init()
    except BACKEND_ERRORS as e:
        logger.warning("redis_unavailable", error=str(e))
        await cache_manager.close()

    logger.info("application_ready")

    yield

    logger.info("application_shutting_down")
    await db_manager.close()
    await cache_manager.close()
    logger.info("application_shutdown_complete")


def _error_body(message: str, code: str, **extra) -> dict:
    body = {"success": False, "message": message, "code": code}
    body.update({key: value for key, value in extra.items() if value})
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error as the standard ``{success: false, ...}`` envelope."""

    @app.exception_handler(StoreGateError)
    async def storegate_exception_handler(request: Request, exc: StoreGateError) -> JSONResponse:
        log = logger.warning if exc.status_code >= 500 else logger.info
        log(
            "request_rejected",
            path=request.url.path,
            code=exc.code,
            status_code=exc.status_code,
            reason=exc.message,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.message, exc.code, details=jsonable_encoder(exc.details)),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if isinstance(exc.detail, str):
            message, details = exc.detail, None
        elif isinstance(exc.detail, dict):
            # Rate limiter puts its counters in the detail
            message, details = exc.detail.get("error", "Request failed"), exc.detail
        else:
            message, details = "Request failed", exc.detail
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(message, f"E_HTTP_{exc.status_code}", details=details),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ())[1:]) or None,
                "message": error.get("msg", "Invalid value"),
                "type": error.get("type"),
            }
            for error in exc.errors()
        ]
        logger.info("validation_error", path=request.url.path, errors=errors)

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_body("Validation failed", "E_VALIDATION", errors=errors),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Global exception handler with error tracking."""
        request_id = getattr(request.state, "request_id", "unknown")

        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )

        error_tracker.capture_exception(
            exc,
            context={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
            }
        )

        if settings.is_production:
            message = "An internal error occurred. Please contact support."
        else:
            message = str(exc) or type(exc).__name__

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(message, "E_INTERNAL", request_id=request_id),
        )


def create_application() -> FastAPI:
    """Application factory."""

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Multi-tenant identity and access control for e-commerce storefronts",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    # Middleware (order matters - last added = outermost)

    @app.middleware("http")
    async def performance_middleware(request: Request, call_next):
        return await track_http_metrics(request, call_next)

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Register routers
    from app.api.v1.router import v1_router
    from app.api.health_router import router as health_router
    from app.api.metrics_router import router as metrics_router

    app.include_router(health_router)

    if settings.metrics_enabled:
        app.include_router(metrics_router)

    app.include_router(v1_router, prefix="/api")

    @app.get("/", tags=["Root"])
    async def root() -> dict:
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.app_version,
            "environment": settings.environment,
            "docs": "/docs" if settings.is_development else "Disabled in production",
            "health": "/health/live",
            "metrics": "/metrics" if settings.metrics_enabled else "Disabled",
        }

    logger.info("application_configured")
    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload and settings.is_development,
        log_level=settings.log_level.lower(),
        access_log=False,  # We handle logging ourselves
    )
