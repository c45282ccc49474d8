# revisions/services/revision_service.py

import logging
from typing import List, Optional

import jsondiff
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from revisions.models.enums import RevisionOrder
from revisions.models.revision import Revision, utcnow
from revisions.schemas.record import OwnerRef
from revisions.schemas.snapshot import SnapshotDocument
from revisions.utils.exceptions import NotFoundError, StoreUnavailableError
from revisions.utils.locks import lock_owner_revisions, owner_lock

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("audit")

# Total order over revisions: creation time, ties broken by id
OLDEST_FIRST = (Revision.created_at.asc(), Revision.id.asc())
NEWEST_FIRST = (Revision.created_at.desc(), Revision.id.desc())


def _owned_by(owner: OwnerRef):
    return (Revision.owner_id == owner.id, Revision.owner_type == owner.type)


async def prune_revisions(db: AsyncSession, owner: OwnerRef, limit: int) -> int:
    """
    Delete the oldest revisions of an owner beyond `limit`.
    Does not commit. Returns the number of deleted revisions.
    """
    stmt = (
        select(Revision.id)
        .where(*_owned_by(owner))
        .order_by(*NEWEST_FIRST)
        .offset(limit)
    )
    stale = list((await db.execute(stmt)).scalars().all())
    if not stale:
        return 0

    await db.execute(delete(Revision).where(Revision.id.in_(stale)))
    logger.info(
        "Pruned %d revisions of %s %s (limit %d)",
        len(stale),
        owner.type,
        owner.id,
        limit,
    )
    audit_logger.info(
        "Revisions pruned: owner=%s:%s ids=%s", owner.type, owner.id, stale
    )
    return len(stale)


async def insert_revision(
    db: AsyncSession,
    owner: OwnerRef,
    snapshot: SnapshotDocument,
    user_id: Optional[int] = None,
    retention_limit: Optional[int] = None,
) -> Revision:
    """
    Stage a revision and enforce the retention limit in the current transaction.
    The caller holds the owner lock and commits; the database lock taken here
    is held until then.
    """
    await lock_owner_revisions(db, owner)
    revision = Revision(
        owner_id=owner.id,
        owner_type=owner.type,
        user_id=user_id,
        snapshot=snapshot.to_stored(),
        created_at=utcnow(),
    )
    db.add(revision)
    await db.flush()

    if retention_limit is not None:
        await prune_revisions(db, owner, retention_limit)
    return revision


async def stage_revision(
    db: AsyncSession,
    owner: OwnerRef,
    snapshot: SnapshotDocument,
    user_id: Optional[int] = None,
    retention_limit: Optional[int] = None,
) -> Revision:
    """
    Add a revision to the caller's unit of work without committing.

    The revision and its pruning become visible when the caller commits and
    disappear if it rolls back. The session is left for the caller to roll
    back on failure.
    """
    async with owner_lock(owner):
        try:
            revision = await insert_revision(
                db, owner, snapshot, user_id=user_id, retention_limit=retention_limit
            )
        except SQLAlchemyError as exc:
            logger.error(
                "Error staging revision for %s %s: %s",
                owner.type,
                owner.id,
                exc,
                exc_info=True,
            )
            raise StoreUnavailableError("Database temporarily unavailable") from exc

    logger.info(
        "Revision %s staged for %s %s by user %s",
        revision.id,
        owner.type,
        owner.id,
        user_id,
    )
    audit_logger.info(
        "Revision staged: id=%s owner=%s:%s by user=%s",
        revision.id,
        owner.type,
        owner.id,
        user_id,
    )
    return revision


async def create_revision(
    db: AsyncSession,
    owner: OwnerRef,
    snapshot: SnapshotDocument,
    user_id: Optional[int] = None,
    retention_limit: Optional[int] = None,
) -> Revision:
    """
    Persist a new revision for `owner` and prune the oldest ones over the limit.
    Insert, prune and commit run under the owner's lock.
    """
    async with owner_lock(owner):
        try:
            revision = await insert_revision(
                db, owner, snapshot, user_id=user_id, retention_limit=retention_limit
            )
            await db.commit()
            await db.refresh(revision)
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error(
                "Error creating revision for %s %s: %s",
                owner.type,
                owner.id,
                exc,
                exc_info=True,
            )
            raise StoreUnavailableError("Database temporarily unavailable") from exc

    logger.info(
        "Revision %s created for %s %s by user %s",
        revision.id,
        owner.type,
        owner.id,
        user_id,
    )
    audit_logger.info(
        "Revision created: id=%s owner=%s:%s by user=%s",
        revision.id,
        owner.type,
        owner.id,
        user_id,
    )
    return revision


async def list_revisions(
    db: AsyncSession, owner: OwnerRef, order: RevisionOrder = RevisionOrder.NEWEST
) -> List[Revision]:
    """
    Retrieve all revisions of the owner, newest or oldest first.
    """
    ordering = NEWEST_FIRST if order is RevisionOrder.NEWEST else OLDEST_FIRST
    try:
        stmt = select(Revision).where(*_owned_by(owner)).order_by(*ordering)
        result = await db.execute(stmt)
        return list(result.scalars().all())
    except SQLAlchemyError as exc:
        logger.error(
            "Error fetching revisions for %s %s: %s",
            owner.type,
            owner.id,
            exc,
            exc_info=True,
        )
        raise StoreUnavailableError("Database temporarily unavailable") from exc


async def count_revisions(db: AsyncSession, owner: OwnerRef) -> int:
    try:
        stmt = select(func.count(Revision.id)).where(*_owned_by(owner))
        return (await db.execute(stmt)).scalar_one()
    except SQLAlchemyError as exc:
        logger.error("Error counting revisions: %s", exc, exc_info=True)
        raise StoreUnavailableError("Database temporarily unavailable") from exc


async def get_latest_revision(db: AsyncSession, owner: OwnerRef) -> Optional[Revision]:
    try:
        stmt = select(Revision).where(*_owned_by(owner)).order_by(*NEWEST_FIRST)
        result = await db.execute(stmt.limit(1))
        return result.scalars().first()
    except SQLAlchemyError as exc:
        logger.error("Error fetching latest revision: %s", exc, exc_info=True)
        raise StoreUnavailableError("Database temporarily unavailable") from exc


async def list_user_revisions(db: AsyncSession, user_id: int) -> List[Revision]:
    """
    Retrieve all revisions attributed to a user, newest first.
    """
    try:
        stmt = (
            select(Revision).where(Revision.user_id == user_id).order_by(*NEWEST_FIRST)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())
    except SQLAlchemyError as exc:
        logger.error(
            "Error fetching revisions of user %s: %s", user_id, exc, exc_info=True
        )
        raise StoreUnavailableError("Database temporarily unavailable") from exc


async def get_revision(db: AsyncSession, revision_id: int) -> Revision:
    """
    Retrieve a revision by its ID; NotFoundError if it does not exist.
    """
    try:
        revision = await db.get(Revision, revision_id)
    except SQLAlchemyError as exc:
        logger.error(
            "Error fetching revision %s: %s", revision_id, exc, exc_info=True
        )
        raise StoreUnavailableError("Database temporarily unavailable") from exc
    if revision is None:
        logger.warning("Revision %s not found", revision_id)
        raise NotFoundError(f"Revision {revision_id} not found")
    return revision


async def delete_all_revisions(db: AsyncSession, owner: OwnerRef) -> int:
    """
    Delete every revision of the owner. Returns the number deleted.
    """
    async with owner_lock(owner):
        try:
            result = await db.execute(delete(Revision).where(*_owned_by(owner)))
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error(
                "Error deleting revisions of %s %s: %s",
                owner.type,
                owner.id,
                exc,
                exc_info=True,
            )
            raise StoreUnavailableError("Database temporarily unavailable") from exc

    logger.info("Deleted %d revisions of %s %s", result.rowcount, owner.type, owner.id)
    audit_logger.info(
        "Revisions deleted: owner=%s:%s count=%d",
        owner.type,
        owner.id,
        result.rowcount,
    )
    return result.rowcount


async def delete_revision(db: AsyncSession, revision_id: int) -> None:
    revision = await get_revision(db, revision_id)
    owner = OwnerRef(revision.owner_id, revision.owner_type)
    try:
        await db.delete(revision)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(
            "Error deleting revision %s: %s", revision_id, exc, exc_info=True
        )
        raise StoreUnavailableError("Database temporarily unavailable") from exc

    audit_logger.info(
        "Revision deleted: id=%s owner=%s:%s", revision_id, owner.type, owner.id
    )


async def diff_revisions(db: AsyncSession, first_id: int, second_id: int) -> dict:
    """
    Compute a JSON diff between the snapshots of two revisions.
    """
    first = await get_revision(db, first_id)
    second = await get_revision(db, second_id)
    diff = jsondiff.diff(first.snapshot, second.snapshot, marshal=True)
    logger.debug("Computed diff between revisions %s and %s", first_id, second_id)
    return diff
