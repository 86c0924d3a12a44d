"""
Tag persistence — resolve-or-create inside article writes, plus the
read-only lookups exposed to callers.

Tags are created lazily as a side effect of article creation and are
never updated or deleted.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.errors import NotFoundError
from conduit.models import Tag
from conduit.repositories.predicates import build_tag_predicate, paginate
from conduit.schemas import TagFilter
from conduit.transaction import TransactionCoordinator

logger = logging.getLogger(__name__)


class ResolveOutcome(enum.Enum):
    FOUND = "found"
    CREATED = "created"


@dataclass(frozen=True)
class TagResolution:
    tag: Tag
    outcome: ResolveOutcome

    @property
    def created(self) -> bool:
        return self.outcome is ResolveOutcome.CREATED


# ---------------------------------------------------------------------------
# Session-level helpers (run inside the caller's transaction)
# ---------------------------------------------------------------------------

async def find_tags(db: AsyncSession, filter_: TagFilter) -> list[Tag]:
    q = build_tag_predicate(filter_).apply(select(Tag)).order_by(Tag.id.asc())
    q = paginate(q, filter_.limit, filter_.offset)
    return list((await db.execute(q)).scalars().all())


async def find_tag_by_name(db: AsyncSession, name: str) -> Tag | None:
    tags = await find_tags(db, TagFilter(name=name))
    return tags[0] if tags else None


async def resolve_tag(db: AsyncSession, name: str) -> TagResolution:
    """
    Return the tag called *name*, creating it when absent.

    The insert runs in a SAVEPOINT.  If a concurrent writer created the
    same name first, the unique violation only rolls back the savepoint
    and the existing row is returned as FOUND.
    """
    tag = await find_tag_by_name(db, name)
    if tag is not None:
        return TagResolution(tag, ResolveOutcome.FOUND)

    try:
        async with db.begin_nested():
            tag = Tag(name=name)
            db.add(tag)
            await db.flush()
    except IntegrityError:
        tag = await find_tag_by_name(db, name)
        if tag is None:
            raise
        logger.debug("tag %r created concurrently; using id=%s", name, tag.id)
        return TagResolution(tag, ResolveOutcome.FOUND)

    logger.debug("created tag %r id=%s", name, tag.id)
    return TagResolution(tag, ResolveOutcome.CREATED)


# ---------------------------------------------------------------------------
# Public repository
# ---------------------------------------------------------------------------

class TagRepository:
    def __init__(self, coordinator: TransactionCoordinator) -> None:
        self._tx = coordinator

    async def find_by_name(self, name: str) -> Tag:
        async with self._tx.transaction("tags.find_by_name") as db:
            tag = await find_tag_by_name(db, name)
        if tag is None:
            raise NotFoundError(f"tag {name!r} not found")
        return tag

    async def list(self, filter_: TagFilter | None = None) -> list[Tag]:
        async with self._tx.transaction("tags.list") as db:
            return await find_tags(db, filter_ or TagFilter())
