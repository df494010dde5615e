"""
Trending hashtags — top-N tags by running post count.

This is an approximation for display, not a live leaderboard: the list is
cached under its own key (trending:hashtags:{limit}) for 15 minutes and a
Redis failure just means the hashtags table is queried directly.
"""
import json
import logging
from typing import Optional

from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from feed_engine.clients.redis_client import CacheClient
from feed_engine.config import settings
from feed_engine.models import Hashtag
from feed_engine.schemas import TrendingHashtag

logger = logging.getLogger(__name__)

TRENDING_KEY = "trending:hashtags:{limit}"


def clamp_trending_limit(limit: Optional[int]) -> int:
    if limit is None:
        return settings.trending_default_limit
    return max(1, min(int(limit), settings.trending_max_limit))


async def get_trending_hashtags(
    db: AsyncSession,
    cache: CacheClient,
    limit: Optional[int] = None,
) -> list[TrendingHashtag]:
    limit = clamp_trending_limit(limit)
    key = TRENDING_KEY.format(limit=limit)

    try:
        cached = await cache.get(key)
    except RedisError as exc:
        logger.warning("Trending cache read failed: %s — querying datastore", exc)
        cached = None

    if cached is not None:
        try:
            return [TrendingHashtag.model_validate(h) for h in json.loads(cached)]
        except ValueError:
            logger.warning("Discarding corrupt trending cache entry %s", key)

    rows = await db.execute(
        select(Hashtag).order_by(Hashtag.post_count.desc(), Hashtag.tag).limit(limit)
    )
    hashtags = [
        TrendingHashtag(id=h.id, tag=h.tag, post_count=h.post_count)
        for h in rows.scalars().all()
    ]

    try:
        await cache.set(
            key,
            json.dumps([h.model_dump() for h in hashtags]),
            settings.trending_cache_ttl,
        )
    except RedisError as exc:
        logger.warning("Trending cache populate failed: %s", exc)

    return hashtags
