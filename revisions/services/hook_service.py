# revisions/services/hook_service.py

import logging
from typing import Optional

from revisions.models.revision import Revision
from revisions.schemas.record import VersionableRecord
from revisions.services.revision_service import delete_all_revisions, stage_revision
from revisions.services.rollback_service import is_rolling_back
from revisions.services.snapshot_service import build_snapshot
from revisions.stores.base import RecordStore

logger = logging.getLogger(__name__)


async def manual_snapshot(
    store: RecordStore, record: VersionableRecord, user_id: Optional[int] = None
) -> Revision:
    """
    Capture the record as given and add it as a revision to the store's
    current transaction. The host commits it together with its own writes.
    """
    options = store.registry.options_for(record)
    snapshot = await build_snapshot(store, record, options)
    return await stage_revision(
        store.db,
        record.ref,
        snapshot,
        user_id=user_id,
        retention_limit=options.retention_limit,
    )


async def on_after_create(
    store: RecordStore, record: VersionableRecord, user_id: Optional[int] = None
) -> Optional[Revision]:
    """
    Call once the record has been inserted.
    Stages a revision only when the options enable snapshot_on_create.
    """
    if not store.registry.options_for(record).snapshot_on_create:
        return None
    return await manual_snapshot(store, record, user_id=user_id)


async def on_before_update(
    store: RecordStore, record: VersionableRecord, user_id: Optional[int] = None
) -> Optional[Revision]:
    """
    Call before the update is written.

    `record.fields` must hold the values from before the change; relations
    are read from the store, so the host must not have flushed the update
    yet. Nothing is committed: if the host rolls back, the revision goes too.
    Returns None while a rollback of the same record is in progress.
    """
    if is_rolling_back(record.ref):
        logger.debug(
            "Skipping update snapshot of %s %s: rollback in progress",
            record.type,
            record.id,
        )
        return None
    return await manual_snapshot(store, record, user_id=user_id)


async def delete_record_revisions(store: RecordStore, record: VersionableRecord) -> int:
    return await delete_all_revisions(store.db, record.ref)
