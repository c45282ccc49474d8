# revisions/services/rollback_service.py

import logging
from contextvars import ContextVar
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional

from sqlalchemy.exc import SQLAlchemyError

from revisions.models.enums import RelationKind
from revisions.models.revision import Revision
from revisions.registry import RecordType, RelationDef, resolve_kind
from revisions.schemas.options import RevisionOptions
from revisions.schemas.record import OwnerRef, VersionableRecord
from revisions.schemas.snapshot import RelationCapture, SnapshotDocument
from revisions.services.revision_service import get_revision, insert_revision
from revisions.services.snapshot_service import build_snapshot
from revisions.stores.base import RecordStore
from revisions.utils.exceptions import (
    NotFoundError,
    OwnershipMismatchError,
    RevisionError,
    StoreUnavailableError,
    UnsupportedRelationError,
)
from revisions.utils.locks import owner_lock

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("audit")

# Owners with a rollback in progress in the current task
_rolling_back: ContextVar[FrozenSet[OwnerRef]] = ContextVar(
    "revisions_rolling_back", default=frozenset()
)


def is_rolling_back(owner: OwnerRef) -> bool:
    return owner in _rolling_back.get()


def _key(value: Any) -> str:
    # Snapshot ids went through JSON; compare in text form
    return str(value)


async def _restore_record(
    store: RecordStore, ref: OwnerRef, name: str, rel: RelationDef, captured: dict
) -> Any:
    """Update the captured related record if it still exists, else re-create it."""
    related_id = captured.get(rel.related_key)
    if related_id is not None and await store.related_exists(ref, name, related_id):
        await store.update_related(ref, name, related_id, captured)
        return related_id
    return await store.create_related(ref, name, captured)


async def _restore_owned(
    store: RecordStore,
    ref: OwnerRef,
    name: str,
    rel: RelationDef,
    capture: RelationCapture,
) -> None:
    """
    One-to-one and one-to-many: restore captured records, then delete live
    records that are not part of the snapshot.
    """
    live = await store.list_related(ref, name)
    keep = set()
    for captured in capture.records:
        keep.add(_key(await _restore_record(store, ref, name, rel, captured)))

    for row in live:
        related_id = row.fields[rel.related_key]
        if _key(related_id) not in keep:
            await store.delete_related(ref, name, related_id)


async def _restore_belongs_to(
    store: RecordStore,
    ref: OwnerRef,
    name: str,
    rel: RelationDef,
    capture: RelationCapture,
) -> None:
    # The parent is shared; restore its fields but never delete it
    for captured in capture.records[:1]:
        await _restore_record(store, ref, name, rel, captured)


async def _restore_many_to_many(
    store: RecordStore,
    ref: OwnerRef,
    name: str,
    rel: RelationDef,
    capture: RelationCapture,
) -> None:
    related_key = rel.pivot_related_key
    live = {
        _key(row.pivot[related_key]): row.pivot
        for row in await store.list_related(ref, name)
    }
    wanted = {_key(pivot[related_key]): pivot for pivot in capture.pivots}

    for key, pivot in live.items():
        if key not in wanted:
            await store.detach_pivot(ref, name, pivot[related_key])

    for key, pivot in wanted.items():
        related_id = pivot[related_key]
        if key in live:
            await store.update_pivot(ref, name, related_id, pivot)
            continue
        if not await store.related_exists(ref, name, related_id):
            raise NotFoundError(
                f"Cannot re-attach {name} {related_id}: record no longer exists"
            )
        await store.attach_pivot(ref, name, related_id, pivot)


Reconciler = Callable[
    [RecordStore, OwnerRef, str, RelationDef, RelationCapture], Awaitable[None]
]

RECONCILERS: Dict[RelationKind, Reconciler] = {
    RelationKind.ONE_TO_ONE: _restore_owned,
    RelationKind.ONE_TO_MANY: _restore_owned,
    RelationKind.MANY_TO_MANY: _restore_many_to_many,
    RelationKind.BELONGS_TO: _restore_belongs_to,
}


async def reconcile_relation(
    store: RecordStore,
    ref: OwnerRef,
    record_type: RecordType,
    name: str,
    capture: RelationCapture,
) -> None:
    """
    Make the live relation `name` match its captured state.
    """
    rel = record_type.relation(name)
    kind = resolve_kind(rel.kind)
    if kind is not capture.kind:
        raise UnsupportedRelationError(
            f"Relation '{name}' is {kind.value} but was captured as "
            f"{capture.kind.value}"
        )
    await RECONCILERS[kind](store, ref, name, rel, capture)


async def _apply(
    store: RecordStore,
    record: VersionableRecord,
    record_type: RecordType,
    document: SnapshotDocument,
) -> None:
    relations = document.relations
    # Parents first so the restored foreign key points at an existing row
    for name, capture in relations.items():
        if capture.kind is RelationKind.BELONGS_TO:
            await reconcile_relation(store, record.ref, record_type, name, capture)

    await store.update_fields(record.ref, document.fields)

    for name, capture in relations.items():
        if capture.kind is not RelationKind.BELONGS_TO:
            await reconcile_relation(store, record.ref, record_type, name, capture)


async def rollback_to_revision(
    store: RecordStore,
    record: VersionableRecord,
    revision: Revision,
    options: Optional[RevisionOptions] = None,
    user_id: Optional[int] = None,
) -> VersionableRecord:
    """
    Roll a record and its captured relations back to a revision.

    When enabled by the options the current state is saved as a new revision
    first. All writes share one transaction: on any failure it is rolled back
    and the error propagates. Returns the record as reloaded after commit.
    """
    revision_id = revision.id
    if revision.owner_id != record.id or revision.owner_type != record.type:
        logger.warning(
            "Rollback refused: revision %s belongs to %s %s, not %s %s",
            revision_id,
            revision.owner_type,
            revision.owner_id,
            record.type,
            record.id,
        )
        raise OwnershipMismatchError(
            f"Revision {revision_id} does not belong to {record.type} {record.id}"
        )

    options = options or store.registry.options_for(record)
    record_type = store.registry.get(record.type)
    document = SnapshotDocument.from_stored(revision.snapshot)

    token = _rolling_back.set(_rolling_back.get() | {record.ref})
    try:
        async with owner_lock(record.ref):
            try:
                if options.snapshot_on_rollback:
                    current = await store.load_record(record.ref)
                    snapshot = await build_snapshot(store, current, options)
                    await insert_revision(
                        store.db,
                        record.ref,
                        snapshot,
                        user_id=user_id,
                        retention_limit=options.retention_limit,
                    )
                await _apply(store, record, record_type, document)
                await store.commit()
            except SQLAlchemyError as exc:
                await store.rollback()
                logger.error(
                    "Error rolling back %s %s to revision %s: %s",
                    record.type,
                    record.id,
                    revision_id,
                    exc,
                    exc_info=True,
                )
                raise StoreUnavailableError(
                    "Database temporarily unavailable"
                ) from exc
            except RevisionError as exc:
                await store.rollback()
                logger.warning(
                    "Rollback of %s %s to revision %s aborted: %s",
                    record.type,
                    record.id,
                    revision_id,
                    exc.detail,
                )
                raise
    finally:
        _rolling_back.reset(token)

    logger.info(
        "Rolled back %s %s to revision %s by user %s",
        record.type,
        record.id,
        revision_id,
        user_id,
    )
    audit_logger.info(
        "Rollback: owner=%s:%s to revision=%s by user=%s",
        record.type,
        record.id,
        revision_id,
        user_id,
    )
    return await store.load_record(record.ref)


async def rollback_to_revision_id(
    store: RecordStore,
    record: VersionableRecord,
    revision_id: int,
    options: Optional[RevisionOptions] = None,
    user_id: Optional[int] = None,
) -> VersionableRecord:
    revision = await get_revision(store.db, revision_id)
    return await rollback_to_revision(
        store, record, revision, options=options, user_id=user_id
    )
