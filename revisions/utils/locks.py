# revisions/utils/locks.py

import asyncio
import hashlib
import weakref
from typing import Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from revisions.db.base import dialect_name
from revisions.models.revision import Revision
from revisions.schemas.record import OwnerRef

# Locks live only while someone holds a reference to them
_owner_locks: "weakref.WeakValueDictionary[Tuple[str, int], asyncio.Lock]" = (
    weakref.WeakValueDictionary()
)


def owner_lock(owner: OwnerRef) -> asyncio.Lock:
    """
    Return the in-process lock serializing revision writes for one owner.
    """
    key = (owner.type, owner.id)
    lock = _owner_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _owner_locks[key] = lock
    return lock


def owner_lock_key(owner: OwnerRef) -> int:
    """
    Signed 64-bit key for a database advisory lock on one owner.
    Stable across processes, unlike hash().
    """
    digest = hashlib.blake2b(
        f"{owner.type}:{owner.id}".encode("utf-8"), digest_size=8
    ).digest()
    return int.from_bytes(digest, "big", signed=True)


def owner_lock_statement(dialect: str, owner: OwnerRef) -> Optional[Select]:
    """
    Statement locking the owner's revisions until the transaction ends.

    PostgreSQL takes a transaction-scoped advisory lock; other servers lock
    the owner's existing rows. SQLite already serializes writers.
    """
    if dialect == "sqlite":
        return None
    if dialect == "postgresql":
        return select(func.pg_advisory_xact_lock(owner_lock_key(owner)))
    return (
        select(Revision.id)
        .where(Revision.owner_id == owner.id, Revision.owner_type == owner.type)
        .with_for_update()
    )


async def lock_owner_revisions(db: AsyncSession, owner: OwnerRef) -> None:
    """
    Hold a database lock on the owner's revisions for the current transaction,
    so concurrent writers from other processes count after this one commits.
    """
    stmt = owner_lock_statement(dialect_name(db), owner)
    if stmt is not None:
        await db.execute(stmt)
