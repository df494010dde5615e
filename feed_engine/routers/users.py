"""
Social graph mutation hooks:
  POST /users/follow     — follow (PENDING if the target is private)
  POST /users/unfollow   — remove a follow edge
  POST /users/block      — block; severs follows in both directions
  POST /users/unblock    — remove a block (follows are not restored)
  POST /users/mute       — hide a user's posts from the muter's feeds
  POST /users/unmute
  GET  /users/{id}/following — the (cached) ACCEPTED following set

Each mutation commits first and then invalidates the affected
user:following entries in the same request, so the next feed read sees the
new graph. If Redis refuses the delete the request fails with 503 rather
than report success over a stale cache; retrying is safe because every
mutation here is idempotent.

Blocks and mutes never touch the cache: exclusion sets are recomputed on
every feed request.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from opentelemetry import trace
from sqlalchemy import and_, delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from feed_engine.database import get_db
from feed_engine.feed.graph_cache import SocialGraphCache, get_graph_cache
from feed_engine.models import Block, Follow, FollowStatus, Mute, User
from feed_engine.schemas import BlockRequest, FollowRequest, FollowResponse, MuteRequest

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


async def _require_user(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")
    return user


async def _sever_follows(db: AsyncSession, a: str, b: str) -> None:
    await db.execute(
        delete(Follow).where(
            or_(
                and_(Follow.follower_id == a, Follow.following_id == b),
                and_(Follow.follower_id == b, Follow.following_id == a),
            )
        )
    )


@router.post("/follow", response_model=FollowResponse)
async def follow_user(
    body: FollowRequest,
    db: AsyncSession = Depends(get_db),
    graph: SocialGraphCache = Depends(get_graph_cache),
):
    """
    Create a follower → following edge.

    Following someone who blocked you (or whom you blocked) is refused.
    Repeating a follow returns the existing edge unchanged.
    """
    with tracer.start_as_current_span("follow_user"):
        if body.follower_id == body.following_id:
            raise HTTPException(status_code=400, detail="Cannot follow yourself")

        await _require_user(db, body.follower_id)
        target = await _require_user(db, body.following_id)

        blocked = await db.execute(
            select(Block.blocker_id).where(
                or_(
                    and_(Block.blocker_id == body.follower_id,
                         Block.blocked_id == body.following_id),
                    and_(Block.blocker_id == body.following_id,
                         Block.blocked_id == body.follower_id),
                )
            )
        )
        if blocked.first() is not None:
            raise HTTPException(status_code=403, detail="Unable to follow this user")

        key = (body.follower_id, body.following_id)
        follow = await db.get(Follow, key)
        if follow is None:
            follow = Follow(
                follower_id=body.follower_id,
                following_id=body.following_id,
                status=FollowStatus.PENDING if target.is_private else FollowStatus.ACCEPTED,
            )
            db.add(follow)
            try:
                await db.commit()
            except IntegrityError:
                # A concurrent identical follow inserted the edge first
                await db.rollback()
                follow = await db.get(Follow, key)
                if follow is None:
                    raise
            else:
                logger.info(
                    "%s followed %s (%s)", body.follower_id, body.following_id, follow.status.value
                )

        await graph.invalidate(body.follower_id)
        return FollowResponse(
            follower_id=follow.follower_id,
            following_id=follow.following_id,
            status=follow.status,
        )


@router.post("/unfollow", status_code=status.HTTP_204_NO_CONTENT)
async def unfollow_user(
    body: FollowRequest,
    db: AsyncSession = Depends(get_db),
    graph: SocialGraphCache = Depends(get_graph_cache),
):
    with tracer.start_as_current_span("unfollow_user"):
        result = await db.execute(
            delete(Follow).where(
                Follow.follower_id == body.follower_id,
                Follow.following_id == body.following_id,
            )
        )
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Not following this user")
        await db.commit()
        await graph.invalidate(body.follower_id)
        logger.info("%s unfollowed %s", body.follower_id, body.following_id)


@router.post("/block", status_code=status.HTTP_204_NO_CONTENT)
async def block_user(
    body: BlockRequest,
    db: AsyncSession = Depends(get_db),
    graph: SocialGraphCache = Depends(get_graph_cache),
):
    """Block a user and drop any follow edge between the two, both ways."""
    with tracer.start_as_current_span("block_user"):
        if body.blocker_id == body.blocked_id:
            raise HTTPException(status_code=400, detail="Cannot block yourself")

        await _require_user(db, body.blocker_id)
        await _require_user(db, body.blocked_id)

        try:
            if await db.get(Block, (body.blocker_id, body.blocked_id)) is None:
                db.add(Block(blocker_id=body.blocker_id, blocked_id=body.blocked_id))
            await _sever_follows(db, body.blocker_id, body.blocked_id)
            await db.commit()
        except IntegrityError:
            # A concurrent identical block inserted the row first; the follows still go
            await db.rollback()
            await _sever_follows(db, body.blocker_id, body.blocked_id)
            await db.commit()

        await graph.invalidate(body.blocker_id, body.blocked_id)
        logger.info("%s blocked %s", body.blocker_id, body.blocked_id)


@router.post("/unblock", status_code=status.HTTP_204_NO_CONTENT)
async def unblock_user(body: BlockRequest, db: AsyncSession = Depends(get_db)):
    with tracer.start_as_current_span("unblock_user"):
        result = await db.execute(
            delete(Block).where(
                Block.blocker_id == body.blocker_id,
                Block.blocked_id == body.blocked_id,
            )
        )
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="User is not blocked")
        await db.commit()


@router.post("/mute", status_code=status.HTTP_204_NO_CONTENT)
async def mute_user(body: MuteRequest, db: AsyncSession = Depends(get_db)):
    with tracer.start_as_current_span("mute_user"):
        if body.muter_id == body.muted_id:
            raise HTTPException(status_code=400, detail="Cannot mute yourself")

        await _require_user(db, body.muter_id)
        await _require_user(db, body.muted_id)

        if await db.get(Mute, (body.muter_id, body.muted_id)) is None:
            db.add(Mute(muter_id=body.muter_id, muted_id=body.muted_id))
            try:
                await db.commit()
            except IntegrityError:
                # Already muted by a concurrent request
                await db.rollback()


@router.post("/unmute", status_code=status.HTTP_204_NO_CONTENT)
async def unmute_user(body: MuteRequest, db: AsyncSession = Depends(get_db)):
    with tracer.start_as_current_span("unmute_user"):
        result = await db.execute(
            delete(Mute).where(
                Mute.muter_id == body.muter_id,
                Mute.muted_id == body.muted_id,
            )
        )
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="User is not muted")
        await db.commit()


@router.get("/{user_id}/following")
async def list_following(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    graph: SocialGraphCache = Depends(get_graph_cache),
):
    following = await graph.get_following(db, user_id)
    return {"user_id": user_id, "following": sorted(following)}
