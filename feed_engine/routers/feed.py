"""
Feed retrieval endpoints:
  GET /feed/home               — viewer + following, PUBLIC only
  GET /feed/following          — following only, any visibility
  GET /feed/explore            — recent PUBLIC posts ranked by engagement
  GET /feed/trending/hashtags  — top tags by post count (cached approximation)

`limit` is clamped to 1..100 and an unreadable `cursor` restarts from the
newest post; neither is ever rejected. The viewer id arrives already
authenticated from the gateway.
"""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from feed_engine.clients.redis_client import CacheClient, get_cache
from feed_engine.config import settings
from feed_engine.database import get_db
from feed_engine.feed.assemblers import (
    get_explore_feed,
    get_following_feed,
    get_home_feed,
)
from feed_engine.feed.graph_cache import SocialGraphCache, get_graph_cache
from feed_engine.feed.trending import get_trending_hashtags
from feed_engine.schemas import FeedPage, TrendingHashtag

logger = logging.getLogger(__name__)
router = APIRouter()


async def _bounded(coro, feed: str):
    """Run a feed assembly under the request timeout."""
    try:
        return await asyncio.wait_for(coro, timeout=settings.feed_request_timeout)
    except asyncio.TimeoutError:
        logger.warning("%s feed timed out after %.1fs", feed, settings.feed_request_timeout)
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Feed assembly timed out",
        )


@router.get("/home", response_model=FeedPage)
async def home_feed(
    viewer_id: str = Query(..., description="ID of the requesting user"),
    cursor: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    graph: SocialGraphCache = Depends(get_graph_cache),
):
    return await _bounded(get_home_feed(db, graph, viewer_id, cursor, limit), "home")


@router.get("/following", response_model=FeedPage)
async def following_feed(
    viewer_id: str = Query(..., description="ID of the requesting user"),
    cursor: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    graph: SocialGraphCache = Depends(get_graph_cache),
):
    return await _bounded(
        get_following_feed(db, graph, viewer_id, cursor, limit), "following"
    )


@router.get("/explore", response_model=FeedPage)
async def explore_feed(
    viewer_id: Optional[str] = Query(None, description="Omit for anonymous access"),
    cursor: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await _bounded(get_explore_feed(db, cursor, limit, viewer_id), "explore")


@router.get("/trending/hashtags", response_model=list[TrendingHashtag])
async def trending_hashtags(
    limit: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
):
    return await get_trending_hashtags(db, cache, limit)
