# revisions/schemas/snapshot.py

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from revisions.models.enums import RelationKind
from revisions.utils.exceptions import UnsupportedRelationError

Fields = Dict[str, Any]

# Binary values go into JSON as base64; table_store decodes them the same way
SNAPSHOT_CONFIG = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")


class RelationCapture(BaseModel):
    """
    Captured state of one relation: the related records in relation order and,
    for many-to-many relations, the pivot rows paired with them by position.
    """

    model_config = SNAPSHOT_CONFIG

    kind: RelationKind = Field(..., description="Kind of the captured relation")
    records: List[Fields] = Field(
        default_factory=list, description="Field maps of the related records"
    )
    pivots: Optional[List[Fields]] = Field(
        None, description="Join rows, aligned with records (many-to-many only)"
    )

    @model_validator(mode="after")
    def _check_pivots(self) -> "RelationCapture":
        if self.kind is RelationKind.MANY_TO_MANY:
            if self.pivots is None:
                self.pivots = []
            if len(self.pivots) != len(self.records):
                raise ValueError(
                    f"Many-to-many capture has {len(self.records)} records "
                    f"but {len(self.pivots)} pivots"
                )
        elif self.pivots is not None:
            raise ValueError(f"Pivots are only valid for many-to-many, not {self.kind}")
        return self


class SnapshotDocument(BaseModel):
    """
    The payload stored in a revision: filtered record fields plus relation captures.
    """

    model_config = SNAPSHOT_CONFIG

    fields: Fields = Field(default_factory=dict)
    relations: Dict[str, RelationCapture] = Field(default_factory=dict)

    def to_stored(self) -> dict:
        """JSON-compatible representation persisted in the revisions table."""
        return self.model_dump(mode="json")

    @classmethod
    def from_stored(cls, data: dict) -> "SnapshotDocument":
        """
        Parse a persisted document.
        Relation kinds this engine does not know are rejected before validation.
        """
        known = {kind.value for kind in RelationKind}
        for name, capture in (data.get("relations") or {}).items():
            kind = capture.get("kind") if isinstance(capture, dict) else None
            if kind not in known:
                raise UnsupportedRelationError(
                    f"Relation '{name}' has unsupported kind {kind!r}"
                )
        return cls.model_validate(data)
