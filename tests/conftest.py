"""Shared fixtures: in-memory SQLite datastore, fake cache, seed helpers."""
import os

# Keep tracing local before feed_engine.config is first imported
os.environ.setdefault("OTEL_EXPORTER_OTLP_ENDPOINT", "")

from datetime import datetime
from typing import Optional

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from feed_engine.database import Base
from feed_engine.feed.graph_cache import SocialGraphCache
from feed_engine.models import (
    Block,
    Bookmark,
    Follow,
    FollowStatus,
    Hashtag,
    Like,
    Mute,
    Post,
    Repost,
    User,
    Visibility,
)


class FakeCache:
    """In-memory stand-in for CacheClient; flip `down` to simulate an outage."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.down = False
        self.gets = 0

    def _check(self) -> None:
        if self.down:
            raise RedisConnectionError("cache backend unavailable")

    async def get(self, key: str) -> Optional[str]:
        self._check()
        self.gets += 1
        return self.store.get(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def ping(self) -> bool:
        self._check()
        return True

    async def close(self) -> None:
        pass


class Seed:
    """Writes fixture rows through the test session and commits each one."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _add(self, obj):
        self.db.add(obj)
        await self.db.commit()
        return obj

    async def user(self, username: str, is_private: bool = False) -> User:
        return await self._add(
            User(id=username, username=username, display_name=username.title(),
                 is_private=is_private)
        )

    async def post(
        self,
        post_id: str,
        author: User,
        visibility: Visibility = Visibility.PUBLIC,
        parent_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        likes: int = 0,
        comments: int = 0,
        reposts: int = 0,
        views: int = 0,
    ) -> Post:
        post = Post(
            id=post_id,
            author_id=author.id,
            author=author,
            parent_id=parent_id,
            content=f"post {post_id}",
            visibility=visibility,
            likes_count=likes,
            comments_count=comments,
            reposts_count=reposts,
            views_count=views,
        )
        if created_at is not None:
            post.created_at = created_at
        return await self._add(post)

    async def follow(
        self, follower: User, following: User, status: FollowStatus = FollowStatus.ACCEPTED
    ) -> Follow:
        return await self._add(
            Follow(follower_id=follower.id, following_id=following.id, status=status)
        )

    async def block(self, blocker: User, blocked: User) -> Block:
        return await self._add(Block(blocker_id=blocker.id, blocked_id=blocked.id))

    async def mute(self, muter: User, muted: User) -> Mute:
        return await self._add(Mute(muter_id=muter.id, muted_id=muted.id))

    async def like(self, user: User, post: Post) -> Like:
        return await self._add(Like(user_id=user.id, post_id=post.id))

    async def repost(self, user: User, post: Post) -> Repost:
        return await self._add(Repost(user_id=user.id, post_id=post.id))

    async def bookmark(self, user: User, post: Post) -> Bookmark:
        return await self._add(Bookmark(user_id=user.id, post_id=post.id))

    async def hashtag(self, tag: str, post_count: int) -> Hashtag:
        return await self._add(Hashtag(id=tag, tag=tag, post_count=post_count))


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def seed(db) -> Seed:
    return Seed(db)


@pytest.fixture
def cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def graph(cache) -> SocialGraphCache:
    return SocialGraphCache(cache)
