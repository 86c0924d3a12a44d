"""
Tag tests — resolve-or-create idempotence, the savepoint fallback when an
insert collides with an existing name, and the read-only tag lookups.
"""
import pytest
from sqlalchemy import func, insert, select

from conduit.errors import NotFoundError
from conduit.models import Tag
from conduit.repositories import tags as tag_module
from conduit.repositories.tags import ResolveOutcome, TagRepository, resolve_tag
from conduit.schemas import TagFilter
from conduit.transaction import TransactionCoordinator


@pytest.mark.asyncio
async def test_resolve_twice_in_one_transaction_is_idempotent(coordinator: TransactionCoordinator):
    async with coordinator.transaction("test.resolve") as db:
        first = await resolve_tag(db, "python")
        second = await resolve_tag(db, "python")

    assert first.outcome is ResolveOutcome.CREATED
    assert first.created
    assert second.outcome is ResolveOutcome.FOUND
    assert first.tag.id == second.tag.id


@pytest.mark.asyncio
async def test_resolve_finds_tag_from_earlier_transaction(coordinator: TransactionCoordinator):
    async with coordinator.transaction("test.seed") as db:
        created = await resolve_tag(db, "go")
    async with coordinator.transaction("test.resolve") as db:
        found = await resolve_tag(db, "go")

    assert found.outcome is ResolveOutcome.FOUND
    assert found.tag.id == created.tag.id


@pytest.mark.asyncio
async def test_resolve_treats_duplicate_insert_as_found(coordinator: TransactionCoordinator, monkeypatch):
    """A lookup miss followed by a unique violation resolves to the existing row."""
    async with coordinator.transaction("test.seed") as db:
        await db.execute(insert(Tag).values(name="rust"))

    real_find = tag_module.find_tag_by_name
    calls = []

    async def stale_first_lookup(db, name):
        calls.append(name)
        if len(calls) == 1:
            return None  # another writer inserted after we looked
        return await real_find(db, name)

    monkeypatch.setattr(tag_module, "find_tag_by_name", stale_first_lookup)

    async with coordinator.transaction("test.resolve") as db:
        resolution = await resolve_tag(db, "rust")
        # The enclosing transaction is still usable after the savepoint rollback.
        count = (await db.execute(select(func.count()).select_from(Tag))).scalar_one()

    assert resolution.outcome is ResolveOutcome.FOUND
    assert resolution.tag.name == "rust"
    assert count == 1
    assert calls == ["rust", "rust"]


@pytest.mark.asyncio
async def test_find_by_name(coordinator: TransactionCoordinator, tags: TagRepository):
    async with coordinator.transaction("test.seed") as db:
        await resolve_tag(db, "python")

    tag = await tags.find_by_name("python")
    assert tag.name == "python"


@pytest.mark.asyncio
async def test_find_by_name_missing(tags: TagRepository):
    with pytest.raises(NotFoundError):
        await tags.find_by_name("nope")


@pytest.mark.asyncio
async def test_list_orders_by_id_and_paginates(coordinator: TransactionCoordinator, tags: TagRepository):
    async with coordinator.transaction("test.seed") as db:
        for name in ["c", "a", "b"]:
            await resolve_tag(db, name)

    assert [t.name for t in await tags.list()] == ["c", "a", "b"]
    assert [t.name for t in await tags.list(TagFilter(limit=2, offset=1))] == ["a", "b"]
    assert [t.name for t in await tags.list(TagFilter(name="a"))] == ["a"]
