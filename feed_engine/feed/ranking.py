"""
Explore ranking.

score = likes*3 + comments*5 + reposts*4 + views*0.01

Comments are the deepest engagement signal, reposts amplify, likes are
light, and views are cheap and high-volume. Recency is not part of the
score; the Explore query already bounds candidates to a recent window.
"""
from typing import Protocol, Sequence

LIKE_WEIGHT = 3
COMMENT_WEIGHT = 5
REPOST_WEIGHT = 4
VIEW_WEIGHT = 0.01


class Engagement(Protocol):
    id: str
    likes_count: int
    comments_count: int
    reposts_count: int
    views_count: int


def engagement_score(post: Engagement) -> float:
    return (
        post.likes_count * LIKE_WEIGHT
        + post.comments_count * COMMENT_WEIGHT
        + post.reposts_count * REPOST_WEIGHT
        + post.views_count * VIEW_WEIGHT
    )


def rank_posts(posts: Sequence[Engagement]) -> list[tuple[Engagement, float]]:
    """
    Highest score first. Equal scores fall back to id descending (newer
    first) so the same candidates always produce the same order.
    """
    scored = [(p, engagement_score(p)) for p in posts]
    scored.sort(key=lambda item: item[0].id, reverse=True)
    scored.sort(key=lambda item: item[1], reverse=True)
    return scored
