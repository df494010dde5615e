"""
Redis client wrapper.

Responsibilities:
  • Following sets  — STRING (JSON list) keyed by user:following:{user_id}
  • Trending tags   — STRING (JSON list) keyed by trending:hashtags:{limit}

The client is created in the app lifespan, stored on app.state and handed to
request handlers through the `get_cache` dependency, so tests can swap in an
in-memory fake with the same get / set / delete surface.

Errors are not swallowed here: redis.exceptions.RedisError (connection,
timeout, …) propagates and each caller decides whether a failure is
fatal (invalidation) or a cue to fall back to the datastore (reads).
"""
import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from fastapi import Request

from feed_engine.config import settings

logger = logging.getLogger(__name__)


class CacheClient:
    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def get(self, key: str) -> Optional[str]:
        return await self._redis.get(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        await self._redis.set(key, value, ex=ttl)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._redis.delete(*keys)

    async def ping(self) -> bool:
        return await self._redis.ping()

    async def close(self) -> None:
        await self._redis.aclose()


async def init_cache() -> CacheClient:
    redis = aioredis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_timeout,
    )
    cache = CacheClient(redis)
    try:
        await cache.ping()
        logger.info("Redis connected at %s:%s", settings.redis_host, settings.redis_port)
    except RedisError as exc:
        # Feed reads fall back to the datastore; only invalidations need Redis
        logger.warning(
            "Redis unreachable at %s:%s (%s) — starting in degraded mode",
            settings.redis_host, settings.redis_port, exc,
        )
    return cache


def get_cache(request: Request) -> CacheClient:
    """FastAPI dependency returning the cache client created at startup."""
    cache = getattr(request.app.state, "cache", None)
    if cache is None:
        raise RuntimeError("Cache client not initialised — lifespan did not run")
    return cache
