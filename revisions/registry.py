# revisions/registry.py

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union

from sqlalchemy import Column, Table

from revisions.models.enums import RelationKind
from revisions.schemas.options import RevisionOptions
from revisions.schemas.record import VersionableRecord
from revisions.utils.exceptions import (
    ConfigurationError,
    NotFoundError,
    UnsupportedRelationError,
)


def resolve_kind(kind: Union[RelationKind, str]) -> RelationKind:
    """Return the RelationKind for a declared kind or raise UnsupportedRelationError."""
    try:
        return RelationKind(kind)
    except ValueError:
        raise UnsupportedRelationError(f"Unsupported relation kind {kind!r}") from None


@dataclass(frozen=True)
class RelationDef:
    """
    Describes how a named relation maps onto tables.

    - one_to_one / one_to_many: `foreign_key` is the column on the related
      table pointing back at the owner.
    - belongs_to: `foreign_key` is the column on the owner pointing at the
      related record.
    - many_to_many: rows of `pivot_table` join `pivot_local_key` (owner)
      to `pivot_related_key` (related record).
    """

    kind: Union[RelationKind, str]
    table: Table
    foreign_key: Optional[str] = None
    related_key: str = "id"
    order_by: Optional[str] = None
    pivot_table: Optional[Table] = None
    pivot_local_key: Optional[str] = None
    pivot_related_key: Optional[str] = None

    @classmethod
    def one_to_one(cls, table: Table, foreign_key: str, **kwargs) -> "RelationDef":
        return cls(RelationKind.ONE_TO_ONE, table, foreign_key=foreign_key, **kwargs)

    @classmethod
    def one_to_many(cls, table: Table, foreign_key: str, **kwargs) -> "RelationDef":
        return cls(RelationKind.ONE_TO_MANY, table, foreign_key=foreign_key, **kwargs)

    @classmethod
    def belongs_to(cls, table: Table, foreign_key: str, **kwargs) -> "RelationDef":
        return cls(RelationKind.BELONGS_TO, table, foreign_key=foreign_key, **kwargs)

    @classmethod
    def many_to_many(
        cls, table: Table, pivot_table: Table, local_key: str, related_key: str, **kwargs
    ) -> "RelationDef":
        return cls(
            RelationKind.MANY_TO_MANY,
            table,
            pivot_table=pivot_table,
            pivot_local_key=local_key,
            pivot_related_key=related_key,
            **kwargs,
        )

    @property
    def primary_key(self) -> Column:
        return self.table.c[self.related_key]

    @property
    def order_column(self) -> Column:
        return self.table.c[self.order_by] if self.order_by else self.primary_key


@dataclass
class RecordType:
    """
    A versionable record type: its table, its relations and its revision options.
    `name` is the stable discriminator stored on revisions as owner_type.
    """

    name: str
    table: Table
    relations: Dict[str, RelationDef] = field(default_factory=dict)
    options: RevisionOptions = field(default_factory=RevisionOptions)
    primary_key: str = "id"
    timestamp_fields: Tuple[str, ...] = ("created_at", "updated_at")

    def relation(self, name: str) -> RelationDef:
        try:
            return self.relations[name]
        except KeyError:
            raise ConfigurationError(
                f"Record type '{self.name}' has no relation named '{name}'"
            ) from None


class RecordRegistry:
    """
    Dispatch table from type discriminator to RecordType.
    """

    def __init__(self):
        self._types: Dict[str, RecordType] = {}

    def register(self, record_type: RecordType) -> RecordType:
        if record_type.name in self._types:
            raise ConfigurationError(
                f"Record type '{record_type.name}' is already registered"
            )
        for name in record_type.options.included_relations:
            record_type.relation(name)
        self._types[record_type.name] = record_type
        return record_type

    def get(self, type_name: str) -> RecordType:
        try:
            return self._types[type_name]
        except KeyError:
            raise NotFoundError(f"Unknown record type '{type_name}'") from None

    def options_for(self, record: VersionableRecord) -> RevisionOptions:
        if record.options is not None:
            return record.options
        return self.get(record.type).options

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._types
