"""
Redis-backed cache for tenant resolution and rate-limit counters.

The cache is never a source of truth: when Redis was not initialised or a
call fails, reads are misses and writes report False. Keys are namespaced
as ``storegate:{namespace}:{key}``.
"""

import json
import time
from typing import Any

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from app.config import settings
from app.core.metrics import cache_operation_duration_seconds, cache_operations_total

logger = structlog.get_logger(__name__)

KEY_PREFIX = "storegate"

# Redis raises its own errors; sockets closing under us surface as OSError
BACKEND_ERRORS = (RedisError, OSError)


class CacheManager:
    """Connection lifecycle plus JSON get/set/delete and counters."""

    def __init__(self) -> None:
        self._client: aioredis.Redis | None = None

    async def init(self) -> None:
        self._client = aioredis.from_url(
            str(settings.redis_url),
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis_max_connections,
        )
        await self._client.ping()
        logger.info("cache_connected")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("cache_closed")

    @property
    def is_available(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> aioredis.Redis:
        if self._client is None:
            raise RuntimeError("Cache not initialized. Call init() first.")
        return self._client

    def _build_key(self, namespace: str, key: str) -> str:
        return f"{KEY_PREFIX}:{namespace}:{key}"

    async def get(self, namespace: str, key: str) -> Any | None:
        """Cached JSON value, or None on a miss or backend error."""
        if not self.is_available:
            return None

        cache_key = self._build_key(namespace, key)
        started = time.perf_counter()
        try:
            raw = await self.client.get(cache_key)
        except BACKEND_ERRORS as e:
            logger.warning("cache_get_failed", key=cache_key, error=str(e))
            return None
        finally:
            cache_operation_duration_seconds.labels(operation="get").observe(time.perf_counter() - started)

        cache_operations_total.labels(operation="get", hit=str(raw is not None)).inc()
        return None if raw is None else json.loads(raw)

    async def set(self, namespace: str, key: str, value: Any, ttl: int | None = None) -> bool:
        """
        Store a JSON-serialisable value.

        Args:
            ttl: seconds to keep the entry (defaults to ``redis_cache_ttl``)
        """
        if not self.is_available:
            return False

        cache_key = self._build_key(namespace, key)
        try:
            await self.client.set(cache_key, json.dumps(value, default=str), ex=ttl or settings.redis_cache_ttl)
        except BACKEND_ERRORS as e:
            logger.warning("cache_set_failed", key=cache_key, error=str(e))
            return False

        cache_operations_total.labels(operation="set", hit="n/a").inc()
        return True

    async def delete(self, namespace: str, key: str) -> bool:
        if not self.is_available:
            return False

        cache_key = self._build_key(namespace, key)
        try:
            removed = await self.client.delete(cache_key)
        except BACKEND_ERRORS as e:
            logger.warning("cache_delete_failed", key=cache_key, error=str(e))
            return False
        return removed > 0

    async def increment(self, namespace: str, key: str, ttl: int | None = None) -> int:
        """
        Increment a counter; the expiry window starts with the first hit.

        Errors propagate; the rate limiter decides how to degrade.
        """
        cache_key = self._build_key(namespace, key)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.incr(cache_key)
            pipe.ttl(cache_key)
            count, remaining = await pipe.execute()

        if ttl and remaining < 0:
            await self.client.expire(cache_key, ttl)
        return int(count)

    async def get_ttl(self, namespace: str, key: str) -> int:
        """Remaining lifetime in seconds (-1 no expiry, -2 missing)."""
        return await self.client.ttl(self._build_key(namespace, key))


cache_manager = CacheManager()
