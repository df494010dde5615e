"""
Exclusion set: authors whose posts must never reach a viewer.

  blocks  viewer blocked them, or they blocked the viewer (both directions)
  mutes   viewer muted them (one direction only)

Recomputed on every request. A stale block list would leak content to
someone who just blocked the viewer, so this path is never cached.
"""
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from feed_engine.models import Block, Mute
from feed_engine.telemetry import EXCLUSION_SET_SIZE


async def get_excluded_author_ids(db: AsyncSession, viewer_id: str) -> set[str]:
    blocks = await db.execute(
        select(Block.blocker_id, Block.blocked_id).where(
            or_(Block.blocker_id == viewer_id, Block.blocked_id == viewer_id)
        )
    )
    mutes = await db.execute(select(Mute.muted_id).where(Mute.muter_id == viewer_id))

    excluded: set[str] = set()
    for blocker_id, blocked_id in blocks.all():
        excluded.add(blocked_id if blocker_id == viewer_id else blocker_id)
    excluded.update(r[0] for r in mutes.all())

    EXCLUSION_SET_SIZE.observe(len(excluded))
    return excluded
