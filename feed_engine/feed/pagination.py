"""
Cursor pagination over id-descending post listings.

Post ids are issued in increasing creation order, so "everything older than
the last item I saw" is simply `id < cursor`. A page is produced by fetching
`limit + 1` rows: the extra row only tells us whether another page exists and
is never returned.

Cursors are the last-seen id wrapped in url-safe base64 so clients treat them
as opaque. A cursor that does not decode to a post id restarts from the
newest post instead of erroring; a well-formed cursor whose row was deleted
still works, because the inequality does not need the row to exist.
"""
import base64
import binascii
from dataclasses import dataclass, field
from typing import Generic, Optional, Sequence, TypeVar

from sqlalchemy import Select
from sqlalchemy.orm import InstrumentedAttribute

from feed_engine.config import settings

T = TypeVar("T")

MIN_PAGE_SIZE = 1


def clamp_limit(limit: Optional[int]) -> int:
    """Default a missing limit and clamp the rest into [1, feed_max_page_size]."""
    if limit is None:
        return settings.feed_page_size
    return max(MIN_PAGE_SIZE, min(int(limit), settings.feed_max_page_size))


def encode_cursor(post_id: str) -> str:
    return base64.urlsafe_b64encode(post_id.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cursor(cursor: Optional[str]) -> Optional[str]:
    """Return the boundary id, or None to start from the beginning."""
    if not cursor:
        return None
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        boundary = raw.decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        return None
    # Post ids are ASCII alphanumerics; anything else cannot bound a page
    if not boundary or not (boundary.isascii() and boundary.isalnum()):
        return None
    return boundary


def apply_cursor(
    stmt: Select,
    column: InstrumentedAttribute,
    boundary: Optional[str],
) -> Select:
    if boundary is None:
        return stmt
    return stmt.where(column < boundary)


@dataclass
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False


def slice_page(rows: Sequence[T], limit: int) -> Page[T]:
    """
    Turn an overfetched `limit + 1` result into a page.

    Rows must expose an `id` attribute; the cursor points at the last row
    actually returned, not at the probe row.
    """
    has_more = len(rows) > limit
    items = list(rows[:limit])
    next_cursor = encode_cursor(items[-1].id) if has_more and items else None
    return Page(items=items, next_cursor=next_cursor, has_more=has_more)
