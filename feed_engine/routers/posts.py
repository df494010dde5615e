"""
Single-post endpoint:
  GET /posts/{id}?viewer_id= — fetch one post, count the view, hydrate flags

This is the only write on the read side of the system: the view counter is
bumped with an atomic UPDATE … SET views_count = views_count + 1 so concurrent
readers never lose increments.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from opentelemetry import trace
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from feed_engine.database import get_db
from feed_engine.feed.hydrator import hydrate_interactions
from feed_engine.models import Post
from feed_engine.schemas import FeedPost
from feed_engine.telemetry import POST_VIEWS_TOTAL

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.get("/{post_id}", response_model=FeedPost)
async def get_post(
    post_id: str,
    viewer_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    with tracer.start_as_current_span("get_post") as span:
        span.set_attribute("post.id", post_id)

        result = await db.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(views_count=Post.views_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Post not found")

        post = await db.get(Post, post_id, populate_existing=True)
        POST_VIEWS_TOTAL.inc()

        [hydrated] = await hydrate_interactions(db, [post], viewer_id)
        return hydrated
