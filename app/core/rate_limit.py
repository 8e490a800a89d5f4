"""
Fixed-window rate limiting on Redis counters.

Each tier counts requests per identifier (client IP by default) for a
window starting at the first hit. When Redis is unavailable the limiter
fails open: authentication must keep working without the cache.
"""

from dataclasses import dataclass

import structlog
from fastapi import HTTPException, Request, status

from app.config import settings
from app.core.cache import BACKEND_ERRORS, cache_manager

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    requests: int
    window: int  # seconds
    key_prefix: str


RATE_LIMITS = {
    "default": RateLimitConfig(requests=60, window=60, key_prefix="rl"),
    # Credential endpoints: login, token, register
    "auth": RateLimitConfig(requests=5, window=60, key_prefix="rl_auth"),
    "refresh": RateLimitConfig(requests=30, window=60, key_prefix="rl_refresh"),
}


async def check_rate_limit(identifier: str, limit_type: str = "default") -> dict:
    """
    Count one request against ``identifier`` in the given tier.

    Returns:
        limit / remaining / reset for the current window

    Raises:
        HTTPException: 429 with ``Retry-After`` once the window is exhausted
    """
    config = RATE_LIMITS.get(limit_type, RATE_LIMITS["default"])
    unlimited = {"limit": config.requests, "remaining": config.requests, "reset": 0}

    if not settings.rate_limit_enabled or not cache_manager.is_available:
        return unlimited

    key = f"{identifier}:{limit_type}"
    try:
        current_count = await cache_manager.increment(config.key_prefix, key, ttl=config.window)
        ttl = await cache_manager.get_ttl(config.key_prefix, key)
    except BACKEND_ERRORS as e:
        logger.error("rate_limit_backend_failed", tier=limit_type, error=str(e))
        return unlimited

    if current_count > config.requests:
        logger.warning(
            "rate_limit_exceeded",
            identifier=identifier,
            tier=limit_type,
            count=current_count,
            limit=config.requests,
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "Rate limit exceeded",
                "limit": config.requests,
                "window": config.window,
                "retry_after": ttl,
            },
            headers={
                "X-RateLimit-Limit": str(config.requests),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(ttl),
                "Retry-After": str(ttl),
            },
        )

    return {
        "limit": config.requests,
        "remaining": max(0, config.requests - current_count),
        "reset": ttl,
        "current": current_count,
    }


def rate_limit(limit_type: str = "default", by: str = "ip"):
    """
    Dependency factory applying a tier.

    ``by`` picks the identifier: ``ip``, ``user`` or ``tenant`` (the latter
    two fall back to the client IP before authentication has run).

    Usage:
        @router.post("/login", dependencies=[Depends(rate_limit("auth"))])
    """

    async def dependency(request: Request) -> dict:
        client_host = request.client.host if request.client else "unknown"
        state_key = {"user": "user_id", "tenant": "tenant_id"}.get(by)
        identifier = (getattr(request.state, state_key, None) if state_key else None) or client_host
        return await check_rate_limit(identifier, limit_type)

    return dependency
