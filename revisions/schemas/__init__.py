from revisions.schemas.options import RevisionOptions
from revisions.schemas.record import OwnerRef, RelatedRow, VersionableRecord
from revisions.schemas.revision import RevisionRead
from revisions.schemas.snapshot import Fields, RelationCapture, SnapshotDocument

__all__ = [
    "Fields",
    "OwnerRef",
    "RelatedRow",
    "RelationCapture",
    "RevisionOptions",
    "RevisionRead",
    "SnapshotDocument",
    "VersionableRecord",
]
