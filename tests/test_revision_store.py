# tests/test_revision_store.py

import asyncio

import pytest

from revisions.models.enums import RevisionOrder
from revisions.schemas.record import OwnerRef
from revisions.schemas.revision import RevisionRead
from revisions.schemas.snapshot import SnapshotDocument
from revisions.services.revision_service import (
    count_revisions,
    create_revision,
    delete_all_revisions,
    delete_revision,
    diff_revisions,
    get_latest_revision,
    get_revision,
    list_revisions,
    list_user_revisions,
)
from revisions.utils.exceptions import NotFoundError

OWNER = OwnerRef(1, "post")
OTHER = OwnerRef(2, "post")


def snapshot(name: str) -> SnapshotDocument:
    return SnapshotDocument(fields={"name": name})


async def test_create_revision(db):
    revision = await create_revision(db, OWNER, snapshot("first"), user_id=42)

    assert revision.id is not None
    assert revision.owner_id == 1
    assert revision.owner_type == "post"
    assert revision.user_id == 42
    assert revision.snapshot == {"fields": {"name": "first"}, "relations": {}}
    assert revision.created_at is not None


async def test_revisions_are_scoped_by_owner_id_and_type(db):
    await create_revision(db, OWNER, snapshot("a"))
    await create_revision(db, OWNER._replace(type="page"), snapshot("b"))
    await create_revision(db, OTHER, snapshot("c"))

    revisions = await list_revisions(db, OWNER)

    assert [r.snapshot["fields"]["name"] for r in revisions] == ["a"]


async def test_list_revisions_order(db):
    created = [await create_revision(db, OWNER, snapshot(str(i))) for i in range(3)]
    ids = [revision.id for revision in created]

    newest = await list_revisions(db, OWNER)
    oldest = await list_revisions(db, OWNER, RevisionOrder.OLDEST)

    assert [r.id for r in newest] == ids[::-1]
    assert [r.id for r in oldest] == ids


async def test_get_revision(db):
    revision = await create_revision(db, OWNER, snapshot("a"))

    assert (await get_revision(db, revision.id)).id == revision.id
    with pytest.raises(NotFoundError):
        await get_revision(db, revision.id + 100)


async def test_get_latest_revision(db):
    assert await get_latest_revision(db, OWNER) is None
    await create_revision(db, OWNER, snapshot("a"))
    latest = await create_revision(db, OWNER, snapshot("b"))

    assert (await get_latest_revision(db, OWNER)).id == latest.id


async def test_list_user_revisions(db):
    first = await create_revision(db, OWNER, snapshot("a"), user_id=5)
    await create_revision(db, OWNER, snapshot("b"), user_id=6)
    second = await create_revision(db, OTHER, snapshot("c"), user_id=5)

    revisions = await list_user_revisions(db, 5)

    assert [r.id for r in revisions] == [second.id, first.id]


async def test_delete_all_revisions(db):
    for name in ("a", "b", "c"):
        await create_revision(db, OWNER, snapshot(name))
    await create_revision(db, OTHER, snapshot("d"))

    assert await delete_all_revisions(db, OWNER) == 3
    assert await count_revisions(db, OWNER) == 0
    assert await count_revisions(db, OTHER) == 1
    assert await delete_all_revisions(db, OWNER) == 0


async def test_delete_revision(db):
    keep = await create_revision(db, OWNER, snapshot("a"))
    drop = await create_revision(db, OWNER, snapshot("b"))

    await delete_revision(db, drop.id)

    assert [r.id for r in await list_revisions(db, OWNER)] == [keep.id]
    with pytest.raises(NotFoundError):
        await delete_revision(db, drop.id)


async def test_retention_limit_keeps_most_recent(db):
    created = [
        await create_revision(db, OWNER, snapshot(str(i)), retention_limit=3)
        for i in range(5)
    ]

    remaining = await list_revisions(db, OWNER, RevisionOrder.OLDEST)

    assert len(remaining) == 3
    assert [r.id for r in remaining] == [r.id for r in created[2:]]
    assert remaining[0].id == created[2].id


async def test_retention_limit_does_not_touch_other_owners(db):
    for i in range(3):
        await create_revision(db, OTHER, snapshot(str(i)))
    for i in range(3):
        await create_revision(db, OWNER, snapshot(str(i)), retention_limit=1)

    assert await count_revisions(db, OWNER) == 1
    assert await count_revisions(db, OTHER) == 3


async def test_concurrent_creates_respect_retention_limit(session_factory):
    async def create(i):
        async with session_factory() as session:
            return await create_revision(
                session, OWNER, snapshot(str(i)), retention_limit=2
            )

    await asyncio.gather(*(create(i) for i in range(6)))

    async with session_factory() as session:
        assert await count_revisions(session, OWNER) == 2


async def test_diff_revisions(db):
    first = await create_revision(db, OWNER, SnapshotDocument(fields={"name": "a", "votes": 1}))
    second = await create_revision(db, OWNER, SnapshotDocument(fields={"name": "b", "votes": 1}))

    diff = await diff_revisions(db, first.id, second.id)

    assert diff == {"fields": {"name": "b"}}
    assert await diff_revisions(db, first.id, first.id) == {}
    with pytest.raises(NotFoundError):
        await diff_revisions(db, first.id, second.id + 100)


async def test_revision_read_model(db):
    revision = await create_revision(db, OWNER, snapshot("a"), user_id=3)

    read = RevisionRead.model_validate(revision)

    assert read.id == revision.id
    assert read.owner_type == "post"
    assert read.user_id == 3
    assert read.snapshot.fields == {"name": "a"}
    assert read.snapshot.relations == {}
