"""Cursor-based pagination for writers, sessions and tokens.

Uses keyset pagination (not OFFSET). Listings are ordered by a numeric sort
key descending with the primary key as tie-breaker, so rows sharing a sort
key (e.g. sessions with the same start second) are never skipped or repeated.
The cursor encodes (sort key, id) of a boundary row as base64 JSON.

``direction="next"`` walks towards older rows (after the cursor);
``direction="prev"`` returns the page immediately before the cursor. Both
return items in descending order.
"""

from __future__ import annotations

import base64
import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, Literal, TypeVar

from sqlalchemy import ColumnElement, Select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")

Direction = Literal["next", "prev"]
CursorKey = tuple[int, int | str]


def encode_cursor(key: int, row_id: int | str) -> str:
    """Encode a cursor from a row's sort key and id."""
    payload = {"key": key, "id": row_id}
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()


def decode_cursor(cursor: str) -> CursorKey:
    """Decode a cursor into (sort key, id).

    Raises:
        ValueError: If cursor is malformed.
    """
    try:
        raw = base64.urlsafe_b64decode(cursor.encode())
        data = json.loads(raw)
        if not isinstance(data, dict) or "key" not in data:
            msg = "Missing 'key' in cursor"
            raise ValueError(msg)
        key, row_id = data["key"], data.get("id")
        if isinstance(key, bool) or not isinstance(key, int):
            msg = "Cursor key must be an integer"
            raise ValueError(msg)
        if isinstance(row_id, bool) or not isinstance(row_id, (int, str)):
            msg = "Cursor id must be an integer or string"
            raise ValueError(msg)
        return key, row_id
    except Exception as e:
        msg = f"Invalid cursor: {e}"
        raise ValueError(msg) from e


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of rows plus cursors for the neighbouring pages."""

    items: list[T]
    next_cursor: str | None
    prev_cursor: str | None


def apply_cursor(
    query: Select,  # type: ignore[type-arg]
    sort_key: ColumnElement[Any],
    tie_key: ColumnElement[Any],
    cursor: str | None,
    direction: Direction,
    tie_type: type = str,
) -> Select:  # type: ignore[type-arg]
    """Apply keyset condition and ordering for ``direction``.

    Raises:
        ValueError: If the cursor is malformed or was issued for a listing
            with a different id type.
    """
    if cursor is not None:
        key, row_id = decode_cursor(cursor)
        if not isinstance(row_id, tie_type):
            msg = "Invalid cursor: id type does not match this listing"
            raise ValueError(msg)
        if direction == "next":
            query = query.where(or_(sort_key < key, and_(sort_key == key, tie_key < row_id)))
        else:
            query = query.where(or_(sort_key > key, and_(sort_key == key, tie_key > row_id)))

    if direction == "next":
        return query.order_by(sort_key.desc(), tie_key.desc())
    return query.order_by(sort_key.asc(), tie_key.asc())


def clamp_limit(limit: int, maximum: int = 100) -> int:
    """Limit bounded to [1, maximum]."""
    return max(1, min(limit, maximum))


async def paginate(
    db: AsyncSession,
    query: Select,  # type: ignore[type-arg]
    sort_key: ColumnElement[Any],
    tie_key: ColumnElement[Any],
    key_of: Callable[[T], CursorKey],
    limit: int = 20,
    cursor: str | None = None,
    direction: Direction = "next",
    tie_type: type = str,
) -> Page[T]:
    """Fetch one page of ORM rows using keyset pagination.

    Args:
        db: Database session.
        query: ``select(Model)`` with filters and loader options, unordered.
        sort_key: Numeric expression the listing is ordered by (descending).
        tie_key: Unique column breaking ties in ``sort_key``.
        key_of: Extracts (sort key, id) from a row, for building cursors.
        limit: Page size.
        cursor: Opaque cursor from a previous response.
        direction: "next" for rows after the cursor, "prev" for rows before.
        tie_type: Python type of ``tie_key`` values (int or str).

    Raises:
        ValueError: If the cursor is malformed.
    """
    query = apply_cursor(query, sort_key, tie_key, cursor, direction, tie_type)
    # Fetch one extra to detect has_more
    result = await db.execute(query.limit(limit + 1))
    rows = list(result.scalars().all())

    has_more = len(rows) > limit
    items = rows[:limit]
    if direction == "prev":
        items.reverse()

    def cursor_for(row: T) -> str:
        return encode_cursor(*key_of(row))

    next_cursor = None
    prev_cursor = None
    if items:
        if direction == "next":
            next_cursor = cursor_for(items[-1]) if has_more else None
            prev_cursor = cursor_for(items[0]) if cursor is not None else None
        else:
            next_cursor = cursor_for(items[-1])
            prev_cursor = cursor_for(items[0]) if has_more else None

    return Page(items=items, next_cursor=next_cursor, prev_cursor=prev_cursor)
