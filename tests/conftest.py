# tests/conftest.py

from datetime import date, datetime

import pytest
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Interval,
    LargeBinary,
    MetaData,
    String,
    Table,
    Text,
    insert,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from revisions.db.base import Base
from revisions.registry import RecordRegistry, RecordType, RelationDef
from revisions.schemas.options import RevisionOptions
from revisions.schemas.record import OwnerRef
from revisions.stores.table_store import TableRecordStore

# Host schema: posts with an author, one reply, many comments and tags
metadata = MetaData()

authors = Table(
    "authors",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("title", String(50)),
    Column("name", String(100)),
    Column("age", Integer),
)

posts = Table(
    "posts",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("author_id", Integer, ForeignKey("authors.id"), nullable=True),
    Column("name", String(255)),
    Column("slug", String(255)),
    Column("content", Text),
    Column("votes", Integer),
    Column("views", Integer),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
)

replies = Table(
    "replies",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("post_id", Integer, ForeignKey("posts.id")),
    Column("subject", String(255)),
    Column("content", Text),
)

comments = Table(
    "comments",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("post_id", Integer, ForeignKey("posts.id")),
    Column("title", String(255)),
    Column("content", Text),
    Column("date", Date),
    Column("active", Boolean),
)

tags = Table(
    "tags",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(100)),
)

post_tag = Table(
    "post_tag",
    metadata,
    Column("post_id", Integer, ForeignKey("posts.id"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id"), primary_key=True),
    Column("position", Integer),
)

# Columns whose values are not JSON-native
attachments = Table(
    "attachments",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("data", LargeBinary),
    Column("span", Interval),
)

CREATED_AT = datetime(2024, 1, 1, 9, 30)
UPDATED_AT = datetime(2024, 1, 2, 18, 0)


def build_registry(options: RevisionOptions | None = None) -> RecordRegistry:
    registry = RecordRegistry()
    registry.register(
        RecordType(
            name="post",
            table=posts,
            relations={
                "author": RelationDef.belongs_to(authors, "author_id"),
                "reply": RelationDef.one_to_one(replies, "post_id"),
                "comments": RelationDef.one_to_many(comments, "post_id"),
                "tags": RelationDef.many_to_many(tags, post_tag, "post_id", "tag_id"),
            },
            options=options or RevisionOptions.instance(),
        )
    )
    registry.register(RecordType(name="attachment", table=attachments))
    return registry


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'revisions.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_store(db):
    def _make(options: RevisionOptions | None = None) -> TableRecordStore:
        return TableRecordStore(db, build_registry(options))

    return _make


@pytest.fixture
async def post(db) -> OwnerRef:
    """
    A post by author 1 with no reply, comments or tags yet.
    """
    await db.execute(
        insert(authors).values(id=1, title="Mr.", name="Andrei", age=30)
    )
    await db.execute(
        insert(posts).values(
            id=1,
            author_id=1,
            name="Post name",
            slug="post-slug",
            content="Post content",
            votes=10,
            views=100,
            created_at=CREATED_AT,
            updated_at=UPDATED_AT,
        )
    )
    await db.commit()
    return OwnerRef(1, "post")


async def add_reply(db, post_id: int, reply_id: int, subject: str = "Reply subject"):
    await db.execute(
        insert(replies).values(
            id=reply_id, post_id=post_id, subject=subject, content="Reply content"
        )
    )
    await db.commit()


async def add_comments(db, post_id: int, *comment_ids: int):
    for comment_id in comment_ids:
        await db.execute(
            insert(comments).values(
                id=comment_id,
                post_id=post_id,
                title=f"Comment {comment_id}",
                content=f"Comment content {comment_id}",
                date=date(2024, 1, comment_id),
                active=comment_id % 2 == 1,
            )
        )
    await db.commit()


async def add_tags(db, post_id: int, *tag_ids: int):
    for position, tag_id in enumerate(tag_ids, start=1):
        await db.execute(insert(tags).values(id=tag_id, name=f"Tag {tag_id}"))
        await db.execute(
            insert(post_tag).values(post_id=post_id, tag_id=tag_id, position=position)
        )
    await db.commit()
