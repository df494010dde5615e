"""
Interaction hydration: attach isLiked / isReposted / isBookmarked for one
viewer to a batch of posts.

A batch costs exactly three queries (likes, reposts, bookmarks), each scoped
to the batch's post ids, regardless of batch size. Anonymous viewers and
empty batches cost none.

The decorated list is only built once all three membership sets are in hand,
so a request cancelled mid-hydration never returns a half-decorated page.
"""
from typing import Optional, Sequence, Type, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from feed_engine.models import Bookmark, Like, Post, Repost
from feed_engine.schemas import AuthorSummary, FeedPost

InteractionModel = Type[Union[Like, Repost, Bookmark]]


async def _marked_post_ids(
    db: AsyncSession,
    model: InteractionModel,
    viewer_id: str,
    post_ids: list[str],
) -> set[str]:
    rows = await db.execute(
        select(model.post_id).where(
            model.user_id == viewer_id,
            model.post_id.in_(post_ids),
        )
    )
    return {r[0] for r in rows.all()}


def to_feed_post(
    post: Post,
    *,
    is_liked: bool = False,
    is_reposted: bool = False,
    is_bookmarked: bool = False,
    score: Optional[float] = None,
) -> FeedPost:
    author = post.author
    return FeedPost(
        id=post.id,
        author_id=post.author_id,
        author=(
            AuthorSummary(
                id=author.id,
                username=author.username,
                display_name=author.display_name,
            )
            if author is not None
            else None
        ),
        parent_id=post.parent_id,
        content=post.content,
        visibility=post.visibility,
        is_pinned=post.is_pinned,
        likes_count=post.likes_count,
        comments_count=post.comments_count,
        reposts_count=post.reposts_count,
        views_count=post.views_count,
        created_at=post.created_at,
        is_liked=is_liked,
        is_reposted=is_reposted,
        is_bookmarked=is_bookmarked,
        score=score,
    )


async def hydrate_interactions(
    db: AsyncSession,
    posts: Sequence[Post],
    viewer_id: Optional[str],
    scores: Optional[dict[str, float]] = None,
) -> list[FeedPost]:
    scores = scores or {}

    if not viewer_id or not posts:
        return [to_feed_post(p, score=scores.get(p.id)) for p in posts]

    post_ids = [p.id for p in posts]

    # Three set-returning queries; one AsyncSession runs them back to back
    liked = await _marked_post_ids(db, Like, viewer_id, post_ids)
    reposted = await _marked_post_ids(db, Repost, viewer_id, post_ids)
    bookmarked = await _marked_post_ids(db, Bookmark, viewer_id, post_ids)

    return [
        to_feed_post(
            p,
            is_liked=p.id in liked,
            is_reposted=p.id in reposted,
            is_bookmarked=p.id in bookmarked,
            score=scores.get(p.id),
        )
        for p in posts
    ]
