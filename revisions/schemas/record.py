# revisions/schemas/record.py

from dataclasses import dataclass
from typing import NamedTuple, Optional

from revisions.schemas.options import RevisionOptions
from revisions.schemas.snapshot import Fields


class OwnerRef(NamedTuple):
    """Polymorphic reference to a record: its id plus a type discriminator."""

    id: int
    type: str


class RelatedRow(NamedTuple):
    fields: Fields
    pivot: Optional[Fields] = None


@dataclass
class VersionableRecord:
    """
    A record as the engine sees it.

    `fields` holds the values to capture; when used from an update hook they
    must be the values from before the write. `options` overrides the
    options registered for the record type for this instance only.
    """

    ref: OwnerRef
    fields: Fields
    options: Optional[RevisionOptions] = None

    @property
    def id(self) -> int:
        return self.ref.id

    @property
    def type(self) -> str:
        return self.ref.type
