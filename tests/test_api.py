"""HTTP surface: graph mutation hooks keep the feeds consistent."""
import asyncio

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from feed_engine.clients.redis_client import get_cache
from feed_engine.config import settings
from feed_engine.database import get_db
from feed_engine.feed.graph_cache import following_key
from feed_engine.main import app
from feed_engine.models import Block, Follow, Visibility
from feed_engine.routers import feed as feed_router


@pytest.fixture
async def client(session_factory, cache):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: cache
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


async def feed_ids(client, feed, viewer_id=None, **params):
    if viewer_id:
        params["viewer_id"] = viewer_id
    resp = await client.get(f"/feed/{feed}", params=params)
    assert resp.status_code == 200, resp.text
    return [p["id"] for p in resp.json()["data"]]


async def test_follow_shows_up_in_the_very_next_home_feed(client, seed):
    v = await seed.user("v")
    a = await seed.user("a")
    await seed.post("P1", a)
    assert await feed_ids(client, "home", "v") == []

    resp = await client.post("/users/follow", json={"follower_id": "v", "following_id": "a"})

    assert resp.status_code == 200
    assert resp.json()["status"] == "ACCEPTED"
    assert await feed_ids(client, "home", "v") == ["P1"]


async def test_unfollow_drops_out_of_the_very_next_following_feed(client, seed):
    v = await seed.user("v")
    a = await seed.user("a")
    await seed.follow(v, a)
    await seed.post("P1", a, visibility=Visibility.FOLLOWERS)
    assert await feed_ids(client, "following", "v") == ["P1"]

    resp = await client.post("/users/unfollow", json={"follower_id": "v", "following_id": "a"})

    assert resp.status_code == 204
    assert await feed_ids(client, "following", "v") == []


async def test_following_a_private_account_stays_pending(client, seed):
    await seed.user("v")
    private = await seed.user("private", is_private=True)
    await seed.post("P1", private)

    resp = await client.post("/users/follow", json={"follower_id": "v", "following_id": "private"})

    assert resp.json()["status"] == "PENDING"
    assert await feed_ids(client, "following", "v") == []


async def test_repeat_follow_is_idempotent(client, seed):
    await seed.user("v")
    await seed.user("a")
    body = {"follower_id": "v", "following_id": "a"}

    first = await client.post("/users/follow", json=body)
    second = await client.post("/users/follow", json=body)

    assert first.status_code == second.status_code == 200
    assert second.json() == first.json()


@pytest.mark.parametrize(
    "body, code",
    [
        ({"follower_id": "v", "following_id": "v"}, 400),
        ({"follower_id": "v", "following_id": "ghost"}, 404),
        ({"follower_id": "v", "following_id": "blocker"}, 403),
    ],
)
async def test_follow_rejections(client, seed, body, code):
    v = await seed.user("v")
    blocker = await seed.user("blocker")
    await seed.block(blocker, v)

    resp = await client.post("/users/follow", json=body)

    assert resp.status_code == code


async def test_block_severs_follows_and_invalidates_both_parties(client, seed, cache):
    v = await seed.user("v")
    a = await seed.user("a")
    await seed.follow(v, a)
    await seed.follow(a, v)
    await seed.post("P1", a)
    await seed.post("P2", v)
    # Warm both cache entries
    assert (await client.get("/users/v/following")).json()["following"] == ["a"]
    assert (await client.get("/users/a/following")).json()["following"] == ["v"]

    resp = await client.post("/users/block", json={"blocker_id": "v", "blocked_id": "a"})

    assert resp.status_code == 204
    assert following_key("v") not in cache.store
    assert following_key("a") not in cache.store
    assert (await client.get("/users/v/following")).json()["following"] == []
    assert await feed_ids(client, "home", "v") == ["P2"]
    assert await feed_ids(client, "home", "a") == ["P1"]
    assert await feed_ids(client, "explore", "a") == ["P1"]


async def test_unblock_restores_visibility_but_not_follows(client, seed):
    v = await seed.user("v")
    a = await seed.user("a")
    await seed.follow(v, a)
    await seed.post("P1", a)
    await client.post("/users/block", json={"blocker_id": "v", "blocked_id": "a"})

    resp = await client.post("/users/unblock", json={"blocker_id": "v", "blocked_id": "a"})

    assert resp.status_code == 204
    assert await feed_ids(client, "explore", "v") == ["P1"]
    assert await feed_ids(client, "following", "v") == []
    assert (await client.post("/users/unblock", json={"blocker_id": "v", "blocked_id": "a"})).status_code == 404


async def test_mute_and_unmute(client, seed):
    v = await seed.user("v")
    a = await seed.user("a")
    await seed.follow(v, a)
    await seed.post("P1", a)
    body = {"muter_id": "v", "muted_id": "a"}

    assert (await client.post("/users/mute", json=body)).status_code == 204
    assert await feed_ids(client, "following", "v") == []

    assert (await client.post("/users/unmute", json=body)).status_code == 204
    assert await feed_ids(client, "following", "v") == ["P1"]


async def test_failed_invalidation_fails_the_mutation(client, seed, cache):
    await seed.user("v")
    await seed.user("a")
    cache.down = True

    resp = await client.post("/users/follow", json={"follower_id": "v", "following_id": "a"})

    assert resp.status_code == 503


async def test_feed_reads_survive_a_cache_outage(client, seed, cache):
    v = await seed.user("v")
    a = await seed.user("a")
    await seed.follow(v, a)
    await seed.post("P1", a)
    cache.down = True

    assert await feed_ids(client, "home", "v") == ["P1"]


async def test_response_uses_camel_case_contract(client, seed):
    v = await seed.user("v")
    a = await seed.user("a")
    post = await seed.post("P1", a, likes=2)
    await seed.post("P2", a)
    await seed.like(v, post)

    body = (await client.get("/feed/explore", params={"viewer_id": "v", "limit": 1})).json()

    assert body["pagination"]["hasMore"] is True
    assert isinstance(body["pagination"]["nextCursor"], str)
    item = body["data"][0]
    assert item["id"] == "P1"
    assert item["authorId"] == "a"
    assert item["author"]["username"] == "a"
    assert (item["isLiked"], item["isReposted"], item["isBookmarked"]) == (True, False, False)
    assert item["likesCount"] == 2


async def test_anonymous_explore(client, seed):
    v = await seed.user("v")
    post = await seed.post("P1", v)
    await seed.like(v, post)

    body = (await client.get("/feed/explore")).json()

    assert [p["isLiked"] for p in body["data"]] == [False]


async def test_out_of_range_limit_is_not_rejected(client, seed):
    v = await seed.user("v")
    for i in range(3):
        await seed.post(f"P{i}", v)

    resp = await client.get("/feed/home", params={"viewer_id": "v", "limit": 5000, "cursor": "junk!"})

    assert resp.status_code == 200
    assert len(resp.json()["data"]) == 3


async def test_direct_fetch_counts_views(client, seed):
    v = await seed.user("v")
    post = await seed.post("P1", v)
    await seed.bookmark(v, post)

    await client.get("/posts/P1")
    resp = await client.get("/posts/P1", params={"viewer_id": "v"})

    assert resp.status_code == 200
    assert resp.json()["viewsCount"] == 2
    assert resp.json()["isBookmarked"] is True
    assert (await client.get("/posts/missing")).status_code == 404


async def test_trending_endpoint(client, seed):
    await seed.hashtag("python", 3)

    resp = await client.get("/feed/trending/hashtags")

    assert resp.json() == [{"id": "python", "tag": "python", "postCount": 3}]


async def test_health(client):
    resp = await client.get("/health")

    assert resp.json()["status"] == "ok"


def missed_existence_check(session_factory, model):
    """A get_db whose first lookup of `model` misses, as if a concurrent insert landed after it."""

    async def override_get_db():
        async with session_factory() as session:
            real_get = session.get
            missed = []

            async def get(entity, ident, **kwargs):
                if entity is model and not missed:
                    missed.append(ident)
                    return None
                return await real_get(entity, ident, **kwargs)

            session.get = get
            yield session

    return override_get_db


async def test_follow_losing_a_concurrent_insert_returns_the_existing_edge(
    client, seed, session_factory
):
    v = await seed.user("v")
    a = await seed.user("a")
    await seed.follow(v, a)
    app.dependency_overrides[get_db] = missed_existence_check(session_factory, Follow)

    resp = await client.post("/users/follow", json={"follower_id": "v", "following_id": "a"})

    assert resp.status_code == 200
    assert resp.json() == {"followerId": "v", "followingId": "a", "status": "ACCEPTED"}


async def test_block_losing_a_concurrent_insert_still_severs_follows(
    client, seed, session_factory
):
    v = await seed.user("v")
    a = await seed.user("a")
    await seed.block(v, a)
    await seed.follow(a, v)
    app.dependency_overrides[get_db] = missed_existence_check(session_factory, Block)

    resp = await client.post("/users/block", json={"blocker_id": "v", "blocked_id": "a"})

    assert resp.status_code == 204
    assert (await client.get("/users/a/following")).json()["following"] == []


async def test_slow_feed_times_out_with_504(client, monkeypatch):
    async def slow_home_feed(*args, **kwargs):
        await asyncio.sleep(1)

    monkeypatch.setattr(feed_router, "get_home_feed", slow_home_feed)
    monkeypatch.setattr(settings, "feed_request_timeout", 0.05)

    resp = await client.get("/feed/home", params={"viewer_id": "v"})

    assert resp.status_code == 504
    assert resp.json()["detail"] == "Feed assembly timed out"


class UnreachableDatastore:
    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, ConnectionError("datastore unreachable"))

    async def get(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, ConnectionError("datastore unreachable"))


async def test_datastore_failure_maps_to_503(client):
    app.dependency_overrides[get_db] = lambda: UnreachableDatastore()

    resp = await client.get("/feed/home", params={"viewer_id": "v"})

    assert resp.status_code == 503
    assert resp.json() == {"detail": "Datastore unavailable, retry the request"}
