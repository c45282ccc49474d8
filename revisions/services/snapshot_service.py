# revisions/services/snapshot_service.py

import logging
from typing import Dict, Optional

from revisions.models.enums import RelationKind
from revisions.registry import RecordType, resolve_kind
from revisions.schemas.options import RevisionOptions
from revisions.schemas.record import VersionableRecord
from revisions.schemas.snapshot import Fields, RelationCapture, SnapshotDocument
from revisions.stores.base import RecordStore

logger = logging.getLogger(__name__)


def filter_fields(
    fields: Fields, options: RevisionOptions, record_type: RecordType
) -> Fields:
    """
    Select the fields to capture.

    With an allow-list only listed fields that exist are kept; otherwise every
    field except the primary key and timestamps. The deny-list is applied next,
    then timestamps are forced in when enabled.
    """
    if options.included_fields:
        selected = {
            name: value
            for name, value in fields.items()
            if name in options.included_fields
        }
    else:
        internal = {record_type.primary_key, *record_type.timestamp_fields}
        selected = {
            name: value for name, value in fields.items() if name not in internal
        }

    for name in options.excluded_fields:
        selected.pop(name, None)

    if options.include_timestamps:
        for name in record_type.timestamp_fields:
            if name in fields:
                selected[name] = fields[name]

    return selected


async def capture_relation(
    store: RecordStore, record: VersionableRecord, record_type: RecordType, name: str
) -> RelationCapture:
    kind = resolve_kind(record_type.relation(name).kind)
    rows = await store.list_related(record.ref, name)
    records = [row.fields for row in rows]
    if kind is RelationKind.MANY_TO_MANY:
        return RelationCapture(
            kind=kind, records=records, pivots=[row.pivot for row in rows]
        )
    return RelationCapture(kind=kind, records=records)


async def build_snapshot(
    store: RecordStore,
    record: VersionableRecord,
    options: Optional[RevisionOptions] = None,
) -> SnapshotDocument:
    """
    Build the snapshot document of a record. Read-only.

    `record.fields` is captured as given, so an update hook must pass the
    values from before the write. Relations are read from the store.
    """
    record_type = store.registry.get(record.type)
    options = options or store.registry.options_for(record)

    # Resolve every relation up front so a bad one aborts before any reads
    for name in options.included_relations:
        resolve_kind(record_type.relation(name).kind)

    relations: Dict[str, RelationCapture] = {}
    for name in options.included_relations:
        relations[name] = await capture_relation(store, record, record_type, name)

    document = SnapshotDocument(
        fields=filter_fields(record.fields, options, record_type),
        relations=relations,
    )
    logger.debug(
        "Built snapshot of %s %s: %d fields, relations=%s",
        record.type,
        record.id,
        len(document.fields),
        list(relations),
    )
    return document
