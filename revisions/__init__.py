from revisions.models import RelationKind, Revision, RevisionOrder
from revisions.registry import RecordRegistry, RecordType, RelationDef
from revisions.schemas import (
    OwnerRef,
    RevisionOptions,
    RevisionRead,
    SnapshotDocument,
    VersionableRecord,
)
from revisions.services.hook_service import (
    delete_record_revisions,
    manual_snapshot,
    on_after_create,
    on_before_update,
)
from revisions.services.revision_service import (
    create_revision,
    delete_all_revisions,
    delete_revision,
    diff_revisions,
    get_latest_revision,
    get_revision,
    list_revisions,
    list_user_revisions,
    stage_revision,
)
from revisions.services.rollback_service import (
    rollback_to_revision,
    rollback_to_revision_id,
)
from revisions.services.snapshot_service import build_snapshot
from revisions.stores import RecordStore, TableRecordStore
from revisions.utils.exceptions import (
    ConfigurationError,
    NotFoundError,
    OwnershipMismatchError,
    RevisionError,
    StoreUnavailableError,
    UnsupportedRelationError,
)

__all__ = [
    "ConfigurationError",
    "NotFoundError",
    "OwnerRef",
    "OwnershipMismatchError",
    "RecordRegistry",
    "RecordStore",
    "RecordType",
    "RelationDef",
    "RelationKind",
    "Revision",
    "RevisionError",
    "RevisionOptions",
    "RevisionOrder",
    "RevisionRead",
    "SnapshotDocument",
    "StoreUnavailableError",
    "TableRecordStore",
    "UnsupportedRelationError",
    "VersionableRecord",
    "build_snapshot",
    "create_revision",
    "delete_all_revisions",
    "delete_record_revisions",
    "delete_revision",
    "diff_revisions",
    "get_latest_revision",
    "get_revision",
    "list_revisions",
    "list_user_revisions",
    "manual_snapshot",
    "on_after_create",
    "on_before_update",
    "rollback_to_revision",
    "rollback_to_revision_id",
    "stage_revision",
]
