"""
Pydantic request / response schemas for the API layer.
Kept separate from ORM models to avoid coupling transport to storage.

Responses are serialised with camelCase aliases (isLiked, nextCursor, …)
because that is what the web and mobile clients read; Python code always
uses the snake_case field names.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from feed_engine.models import FollowStatus, Visibility


class CamelModel(BaseModel):
    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


# ──────────────────────────── Users / graph ──────────────────────────────

class AuthorSummary(CamelModel):
    id: str
    username: str
    display_name: Optional[str] = None


class FollowRequest(BaseModel):
    follower_id: str
    following_id: str


class BlockRequest(BaseModel):
    blocker_id: str
    blocked_id: str


class MuteRequest(BaseModel):
    muter_id: str
    muted_id: str


class FollowResponse(CamelModel):
    follower_id: str
    following_id: str
    status: FollowStatus


# ──────────────────────────── Feed ────────────────────────────────────────

class FeedPost(CamelModel):
    """A post decorated with the requesting viewer's interaction flags."""
    id: str
    author_id: str
    author: Optional[AuthorSummary] = None
    parent_id: Optional[str] = None
    content: Optional[str] = None
    visibility: Visibility
    is_pinned: bool = False
    likes_count: int = 0
    comments_count: int = 0
    reposts_count: int = 0
    views_count: int = 0
    created_at: datetime
    is_liked: bool = False
    is_reposted: bool = False
    is_bookmarked: bool = False
    # Explore only — engagement score exposed for debugging / learning
    score: Optional[float] = None


class Pagination(CamelModel):
    next_cursor: Optional[str] = None
    has_more: bool = False


class FeedPage(CamelModel):
    data: list[FeedPost]
    pagination: Pagination


class TrendingHashtag(CamelModel):
    id: str
    tag: str
    post_count: int
