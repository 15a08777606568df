"""Keyed insert-or-merge over ORM records.

Every mutation made by the reconciler goes through :class:`EntityStore` so
that each handler is an explicit read-then-patch keyed by primary key. Merge
callbacks receive the stored record and return only the fields to change,
which lets handlers keep counters and flags monotonic under redelivery.

The store flushes but never commits; the caller owns the transaction.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from anky.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)

MergeFn = Callable[[ModelT], Mapping[str, Any]]


@dataclass(frozen=True)
class UpsertResult(Generic[ModelT]):
    """Outcome of an upsert: the live record and whether it was newly inserted."""

    record: ModelT
    inserted: bool


class EntityStore:
    """Insert-or-merge primitives bound to one database session."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find(self, model: type[ModelT], key: Any) -> ModelT | None:
        """Return the record at ``key`` or None. Absence is not an error."""
        return await self.db.get(model, key)

    async def upsert(
        self,
        model: type[ModelT],
        key: Any,
        new_fields: Mapping[str, Any],
        merge: MergeFn[ModelT],
    ) -> UpsertResult[ModelT]:
        """Insert ``new_fields`` at ``key``, or apply ``merge(existing)`` as a patch."""
        existing = await self.find(model, key)
        if existing is None:
            record = model(**new_fields)
            self.db.add(record)
            await self.db.flush()
            return UpsertResult(record, inserted=True)

        _apply(existing, merge(existing))
        await self.db.flush()
        return UpsertResult(existing, inserted=False)

    async def insert_or_ignore(
        self, model: type[ModelT], key: Any, fields: Mapping[str, Any]
    ) -> bool:
        """Append-only insert. Returns False when a record already exists at ``key``."""
        if await self.find(model, key) is not None:
            return False
        self.db.add(model(**fields))
        await self.db.flush()
        return True

    async def update(
        self, model: type[ModelT], key: Any, patch: Mapping[str, Any]
    ) -> ModelT | None:
        """Patch the record at ``key`` if present; no-op (returns None) otherwise."""
        existing = await self.find(model, key)
        if existing is None:
            return None
        _apply(existing, patch)
        await self.db.flush()
        return existing


def _apply(record: Base, patch: Mapping[str, Any]) -> None:
    for field, value in patch.items():
        setattr(record, field, value)
