from revisions.models.enums import RelationKind, RevisionOrder
from revisions.models.revision import Revision

__all__ = ["RelationKind", "Revision", "RevisionOrder"]
