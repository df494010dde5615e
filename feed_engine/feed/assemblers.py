"""
Feed assembly — Home, Following and Explore.

Every feed lists top-level posts only (parent_id IS NULL) and runs the same
pipeline:

  Stage 1 │ Candidate authors
  ────────┼──────────────────────────────────────────────────────────────
          │  Home       — viewer ∪ following   (PUBLIC posts only)
          │  Following  — following            (any visibility)
          │  Explore    — anyone, last 24h     (PUBLIC posts only)
          │  minus the viewer's exclusion set (blocks both ways, mutes).

  Stage 2 │ Candidate query
  ────────┼──────────────────────────────────────────────────────────────
          │  id < cursor, ORDER BY id DESC, LIMIT limit + 1.
          │  Explore overfetches limit * 3 and re-ranks by engagement.

  Stage 3 │ Hydration
  ────────┼──────────────────────────────────────────────────────────────
          │  Three batched membership queries → isLiked / isReposted /
          │  isBookmarked for the viewer.

Home and Following page over a strictly monotonic id, so following
nextCursor visits every row exactly once. Explore pages over a volatile
score: a post can be skipped or repeated between pages. That is accepted;
Explore pagination is best-effort.
"""
import logging
import time
from datetime import timedelta
from typing import Optional

from opentelemetry import trace
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from feed_engine.config import settings
from feed_engine.feed.graph_cache import SocialGraphCache
from feed_engine.feed.hydrator import hydrate_interactions
from feed_engine.feed.pagination import (
    Page,
    apply_cursor,
    clamp_limit,
    decode_cursor,
    slice_page,
)
from feed_engine.feed.ranking import rank_posts
from feed_engine.feed.visibility import get_excluded_author_ids
from feed_engine.models import Post, Visibility, utcnow
from feed_engine.schemas import FeedPage, Pagination
from feed_engine.telemetry import FEED_LATENCY, FEED_POSTS_RETURNED

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _top_level_posts() -> Select:
    return select(Post).where(Post.parent_id.is_(None))


async def _fetch(db: AsyncSession, stmt: Select) -> list[Post]:
    rows = await db.execute(stmt)
    return list(rows.scalars().all())


async def _finish(
    feed: str,
    db: AsyncSession,
    page: Page[Post],
    viewer_id: Optional[str],
    started: float,
    scores: Optional[dict[str, float]] = None,
) -> FeedPage:
    with tracer.start_as_current_span("hydrate"):
        data = await hydrate_interactions(db, page.items, viewer_id, scores)

    FEED_LATENCY.labels(feed=feed).observe(time.perf_counter() - started)
    FEED_POSTS_RETURNED.labels(feed=feed).inc(len(data))
    return FeedPage(
        data=data,
        pagination=Pagination(next_cursor=page.next_cursor, has_more=page.has_more),
    )


def _empty_page() -> FeedPage:
    return FeedPage(data=[], pagination=Pagination(has_more=False))


async def get_home_feed(
    db: AsyncSession,
    graph: SocialGraphCache,
    viewer_id: str,
    cursor: Optional[str] = None,
    limit: Optional[int] = None,
) -> FeedPage:
    """The viewer's own posts plus everyone they follow, PUBLIC only."""
    started = time.perf_counter()
    limit = clamp_limit(limit)
    boundary = decode_cursor(cursor)

    with tracer.start_as_current_span("home_feed") as span:
        span.set_attribute("viewer.id", viewer_id)

        with tracer.start_as_current_span("candidate_authors"):
            following = await graph.get_following(db, viewer_id)
            excluded = await get_excluded_author_ids(db, viewer_id)
        author_ids = (following | {viewer_id}) - excluded
        span.set_attribute("candidates.authors", len(author_ids))

        if not author_ids:
            return _empty_page()

        stmt = _top_level_posts().where(
            Post.author_id.in_(sorted(author_ids)),
            Post.visibility == Visibility.PUBLIC,
        )
        stmt = apply_cursor(stmt, Post.id, boundary)
        rows = await _fetch(db, stmt.order_by(Post.id.desc()).limit(limit + 1))

        page = slice_page(rows, limit)
        span.set_attribute("feed.has_more", page.has_more)
        return await _finish("home", db, page, viewer_id, started)


async def get_following_feed(
    db: AsyncSession,
    graph: SocialGraphCache,
    viewer_id: str,
    cursor: Optional[str] = None,
    limit: Optional[int] = None,
) -> FeedPage:
    """
    Everything posted by accounts the viewer follows.

    Unlike Home there is no visibility restriction and the viewer's own
    posts are not included.
    """
    started = time.perf_counter()
    limit = clamp_limit(limit)
    boundary = decode_cursor(cursor)

    with tracer.start_as_current_span("following_feed") as span:
        span.set_attribute("viewer.id", viewer_id)

        with tracer.start_as_current_span("candidate_authors"):
            following = await graph.get_following(db, viewer_id)
            excluded = await get_excluded_author_ids(db, viewer_id)
        author_ids = following - excluded - {viewer_id}
        span.set_attribute("candidates.authors", len(author_ids))

        if not author_ids:
            return _empty_page()

        stmt = _top_level_posts().where(Post.author_id.in_(sorted(author_ids)))
        stmt = apply_cursor(stmt, Post.id, boundary)
        rows = await _fetch(db, stmt.order_by(Post.id.desc()).limit(limit + 1))

        page = slice_page(rows, limit)
        span.set_attribute("feed.has_more", page.has_more)
        return await _finish("following", db, page, viewer_id, started)


async def get_explore_feed(
    db: AsyncSession,
    cursor: Optional[str] = None,
    limit: Optional[int] = None,
    viewer_id: Optional[str] = None,
) -> FeedPage:
    """
    Recent PUBLIC posts from anyone, ranked by engagement.

    Anonymous viewers get no exclusion filtering and no interaction flags.
    """
    started = time.perf_counter()
    limit = clamp_limit(limit)
    boundary = decode_cursor(cursor)
    cutoff = utcnow() - timedelta(hours=settings.explore_window_hours)

    with tracer.start_as_current_span("explore_feed") as span:
        span.set_attribute("viewer.anonymous", viewer_id is None)

        stmt = _top_level_posts().where(
            Post.visibility == Visibility.PUBLIC,
            Post.created_at > cutoff,
        )
        if viewer_id:
            span.set_attribute("viewer.id", viewer_id)
            excluded = await get_excluded_author_ids(db, viewer_id)
            if excluded:
                stmt = stmt.where(Post.author_id.not_in(sorted(excluded)))

        stmt = apply_cursor(stmt, Post.id, boundary)
        overfetch = limit * settings.explore_overfetch_factor
        candidates = await _fetch(db, stmt.order_by(Post.id.desc()).limit(overfetch))
        span.set_attribute("candidates.posts", len(candidates))

        with tracer.start_as_current_span("rank"):
            ranked = rank_posts(candidates)[: limit + 1]

        page = slice_page([post for post, _ in ranked], limit)
        scores = {post.id: score for post, score in ranked}
        span.set_attribute("feed.has_more", page.has_more)
        return await _finish("explore", db, page, viewer_id, started, scores)
