"""
Read-through cache of each user's ACCEPTED following set.

  Key    user:following:{user_id}
  Value  JSON list of followed user ids ("[]" is a real, cacheable answer)
  TTL    settings.following_cache_ttl (1h)

The cache is never the source of truth. Reads that hit a Redis error fall
back to the follows table so feeds stay up when Redis is down. Invalidation
is the opposite: follow / unfollow / block must not report success while a
stale entry may still be served, so a failed delete raises.

Concurrent misses for the same user may each query the follows table; that
scan is cheap and the last write wins.
"""
import json
import logging
from typing import Optional

from fastapi import Depends
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from feed_engine.clients.redis_client import CacheClient, get_cache
from feed_engine.config import settings
from feed_engine.models import Follow, FollowStatus
from feed_engine.telemetry import GRAPH_CACHE_REQUESTS

logger = logging.getLogger(__name__)

FOLLOWING_KEY = "user:following:{user_id}"


class CacheInvalidationError(RuntimeError):
    """A following-set entry could not be deleted; the mutation must fail."""


def following_key(user_id: str) -> str:
    return FOLLOWING_KEY.format(user_id=user_id)


async def load_following(db: AsyncSession, user_id: str) -> set[str]:
    rows = await db.execute(
        select(Follow.following_id).where(
            Follow.follower_id == user_id,
            Follow.status == FollowStatus.ACCEPTED,
        )
    )
    return {r[0] for r in rows.all()}


class SocialGraphCache:
    def __init__(self, cache: CacheClient, ttl: Optional[int] = None) -> None:
        self.cache = cache
        self.ttl = ttl if ttl is not None else settings.following_cache_ttl

    async def get_following(self, db: AsyncSession, user_id: str) -> set[str]:
        cached = await self._read(user_id)
        if cached is not None:
            GRAPH_CACHE_REQUESTS.labels(result="hit").inc()
            return cached

        following = await load_following(db, user_id)
        await self._write(user_id, following)
        return following

    async def invalidate(self, *user_ids: str) -> None:
        keys = [following_key(uid) for uid in user_ids]
        try:
            await self.cache.delete(*keys)
        except RedisError as exc:
            logger.error("Following-set invalidation failed for %s: %s", user_ids, exc)
            raise CacheInvalidationError(
                f"could not invalidate following cache for {', '.join(user_ids)}"
            ) from exc
        logger.debug("Invalidated following cache for %s", user_ids)

    async def _read(self, user_id: str) -> Optional[set[str]]:
        try:
            raw = await self.cache.get(following_key(user_id))
        except RedisError as exc:
            GRAPH_CACHE_REQUESTS.labels(result="error").inc()
            logger.warning(
                "Following cache read failed (user=%s): %s — querying datastore",
                user_id, exc,
            )
            return None

        if raw is None:
            GRAPH_CACHE_REQUESTS.labels(result="miss").inc()
            return None

        try:
            ids = json.loads(raw)
        except ValueError:
            GRAPH_CACHE_REQUESTS.labels(result="miss").inc()
            logger.warning("Discarding corrupt following cache entry for %s", user_id)
            return None
        if not isinstance(ids, list):
            GRAPH_CACHE_REQUESTS.labels(result="miss").inc()
            return None
        return {str(i) for i in ids}

    async def _write(self, user_id: str, following: set[str]) -> None:
        try:
            await self.cache.set(
                following_key(user_id), json.dumps(sorted(following)), self.ttl
            )
        except RedisError as exc:
            logger.warning(
                "Following cache populate failed (user=%s): %s", user_id, exc
            )


def get_graph_cache(cache: CacheClient = Depends(get_cache)) -> SocialGraphCache:
    """FastAPI dependency: a SocialGraphCache over the app's cache client."""
    return SocialGraphCache(cache)
