# revisions/stores/table_store.py

import logging
import uuid
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Iterable, List, Tuple

from pydantic import TypeAdapter
from pydantic_core import to_json
from sqlalchemy import Column, Table, delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import Select

from revisions.db.base import dialect_name

from revisions.models.enums import RelationKind
from revisions.registry import RecordType, RelationDef, resolve_kind
from revisions.schemas.record import OwnerRef, RelatedRow
from revisions.schemas.snapshot import SNAPSHOT_CONFIG, Fields
from revisions.stores.base import RecordStore
from revisions.utils.exceptions import (
    NotFoundError,
    RevisionError,
    StoreUnavailableError,
    UnsupportedRelationError,
)

logger = logging.getLogger(__name__)

_bytes_adapter = TypeAdapter(bytes, config=SNAPSHOT_CONFIG)
_timedelta_adapter = TypeAdapter(timedelta)


def coerce_value(column: Column, value: Any) -> Any:
    """
    Convert a JSON-decoded snapshot value back to the column's Python type.
    """
    if not isinstance(value, str):
        return value
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        return value

    try:
        if python_type is datetime:
            # Python < 3.11 does not parse the "Z" suffix
            if value.endswith("Z"):
                value = value[:-1] + "+00:00"
            return datetime.fromisoformat(value)
        if python_type is date:
            return date.fromisoformat(value)
        if python_type is time:
            return time.fromisoformat(value)
        if python_type is timedelta:
            # ISO 8601 duration, e.g. "PT1H"
            return _timedelta_adapter.validate_python(value)
        if python_type is Decimal:
            return Decimal(value)
        if python_type is uuid.UUID:
            return uuid.UUID(value)
        if python_type is bytes:
            return _bytes_adapter.validate_json(to_json(value))
    except (ArithmeticError, ValueError) as exc:
        logger.error("Cannot restore %s from %r: %s", column, value, exc)
        raise RevisionError(f"Cannot restore {column} from {value!r}") from exc
    return value


def sequence_sync_statement(table: Table, pk: Column) -> Select:
    """
    PostgreSQL: move the primary key sequence past the highest id, after a
    row was inserted with an explicit id. No-op for non-serial keys.
    """
    sequence = func.pg_get_serial_sequence(table.fullname, pk.name)
    return select(func.setval(sequence, select(func.max(pk)).scalar_subquery()))


def row_values(table: Table, fields: Fields, skip: Iterable[str] = ()) -> Fields:
    """Keep only keys that are columns of `table` and coerce their values."""
    skip = set(skip)
    values = {}
    for name, value in fields.items():
        if name in skip:
            continue
        if name not in table.c:
            logger.debug("Ignoring unknown column %s.%s", table.name, name)
            continue
        values[name] = coerce_value(table.c[name], value)
    return values


class TableRecordStore(RecordStore):
    """
    RecordStore over SQLAlchemy Core tables registered in a RecordRegistry.

    Reads run with autoflush disabled so pending, not yet written ORM changes
    of the host never leak into a snapshot.
    """

    async def _execute(self, stmt):
        try:
            with self.db.sync_session.no_autoflush:
                return await self.db.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("Record store statement failed: %s", exc, exc_info=True)
            raise StoreUnavailableError("Database temporarily unavailable") from exc

    def _relation(
        self, ref: OwnerRef, name: str
    ) -> Tuple[RecordType, RelationDef, RelationKind]:
        record_type = self.registry.get(ref.type)
        relation = record_type.relation(name)
        return record_type, relation, resolve_kind(relation.kind)

    def _pk(self, record_type: RecordType) -> Column:
        return record_type.table.c[record_type.primary_key]

    async def get_fields(self, ref: OwnerRef) -> Fields:
        record_type = self.registry.get(ref.type)
        pk = self._pk(record_type)
        stmt = select(record_type.table).where(pk == coerce_value(pk, ref.id))
        row = (await self._execute(stmt)).mappings().first()
        if row is None:
            raise NotFoundError(f"{ref.type} {ref.id} not found")
        return dict(row)

    async def update_fields(self, ref: OwnerRef, fields: Fields) -> None:
        record_type = self.registry.get(ref.type)
        pk = self._pk(record_type)
        values = row_values(record_type.table, fields, skip=[record_type.primary_key])
        if not values:
            return
        stmt = (
            update(record_type.table)
            .where(pk == coerce_value(pk, ref.id))
            .values(**values)
        )
        result = await self._execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError(f"{ref.type} {ref.id} not found")

    async def list_related(self, ref: OwnerRef, relation: str) -> List[RelatedRow]:
        _, rel, kind = self._relation(ref, relation)
        related = rel.table

        if kind in (RelationKind.ONE_TO_ONE, RelationKind.ONE_TO_MANY):
            stmt = (
                select(related)
                .where(related.c[rel.foreign_key] == ref.id)
                .order_by(rel.order_column)
            )
            rows = (await self._execute(stmt)).mappings().all()
            return [RelatedRow(dict(row)) for row in rows]

        if kind is RelationKind.BELONGS_TO:
            owner = await self.get_fields(ref)
            parent_id = owner.get(rel.foreign_key)
            if parent_id is None:
                return []
            stmt = select(related).where(rel.primary_key == parent_id)
            rows = (await self._execute(stmt)).mappings().all()
            return [RelatedRow(dict(row)) for row in rows]

        # many-to-many: positional split, both tables may share column names
        pivot = rel.pivot_table
        stmt = (
            select(related, pivot)
            .join(pivot, pivot.c[rel.pivot_related_key] == rel.primary_key)
            .where(pivot.c[rel.pivot_local_key] == ref.id)
            .order_by(rel.order_column)
        )
        width = len(related.c)
        related_names = related.c.keys()
        pivot_names = pivot.c.keys()
        rows = []
        for row in (await self._execute(stmt)).all():
            values = tuple(row)
            rows.append(
                RelatedRow(
                    dict(zip(related_names, values[:width])),
                    dict(zip(pivot_names, values[width:])),
                )
            )
        return rows

    async def related_exists(self, ref: OwnerRef, relation: str, related_id: Any) -> bool:
        _, rel, _ = self._relation(ref, relation)
        pk = rel.primary_key
        stmt = select(pk).where(pk == coerce_value(pk, related_id))
        return (await self._execute(stmt)).first() is not None

    async def create_related(self, ref: OwnerRef, relation: str, fields: Fields) -> Any:
        _, rel, kind = self._relation(ref, relation)
        if kind is RelationKind.MANY_TO_MANY:
            raise UnsupportedRelationError(
                f"Relation '{relation}' is many-to-many; attach a pivot instead"
            )
        values = row_values(rel.table, fields)
        if kind in (RelationKind.ONE_TO_ONE, RelationKind.ONE_TO_MANY):
            values[rel.foreign_key] = ref.id
        result = await self._execute(insert(rel.table).values(**values))
        related_id = result.inserted_primary_key[0]
        if rel.related_key in values and dialect_name(self.db) == "postgresql":
            await self._execute(sequence_sync_statement(rel.table, rel.primary_key))
        logger.debug(
            "Created %s %s for %s %s", relation, related_id, ref.type, ref.id
        )
        return related_id

    async def update_related(
        self, ref: OwnerRef, relation: str, related_id: Any, fields: Fields
    ) -> None:
        _, rel, kind = self._relation(ref, relation)
        pk = rel.primary_key
        values = row_values(rel.table, fields, skip=[rel.related_key])
        if kind in (RelationKind.ONE_TO_ONE, RelationKind.ONE_TO_MANY):
            values[rel.foreign_key] = ref.id
        if not values:
            return
        stmt = (
            update(rel.table)
            .where(pk == coerce_value(pk, related_id))
            .values(**values)
        )
        result = await self._execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError(f"{relation} {related_id} not found")

    async def delete_related(self, ref: OwnerRef, relation: str, related_id: Any) -> None:
        _, rel, kind = self._relation(ref, relation)
        if kind in (RelationKind.BELONGS_TO, RelationKind.MANY_TO_MANY):
            raise UnsupportedRelationError(
                f"Relation '{relation}' does not own its related records"
            )
        pk = rel.primary_key
        stmt = delete(rel.table).where(
            pk == coerce_value(pk, related_id),
            rel.table.c[rel.foreign_key] == ref.id,
        )
        result = await self._execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError(f"{relation} {related_id} not found")
        logger.debug(
            "Deleted %s %s of %s %s", relation, related_id, ref.type, ref.id
        )

    def _pivot(self, ref: OwnerRef, relation: str) -> Tuple[RelationDef, Table]:
        _, rel, kind = self._relation(ref, relation)
        if kind is not RelationKind.MANY_TO_MANY:
            raise UnsupportedRelationError(
                f"Relation '{relation}' is {kind.value}, it has no pivot table"
            )
        return rel, rel.pivot_table

    def _pivot_clause(self, ref: OwnerRef, rel: RelationDef, related_id: Any):
        pivot = rel.pivot_table
        related_column = pivot.c[rel.pivot_related_key]
        return (
            pivot.c[rel.pivot_local_key] == ref.id,
            related_column == coerce_value(related_column, related_id),
        )

    async def attach_pivot(
        self, ref: OwnerRef, relation: str, related_id: Any, extra: Fields
    ) -> None:
        rel, pivot = self._pivot(ref, relation)
        values = row_values(
            pivot, extra, skip=[rel.pivot_local_key, rel.pivot_related_key]
        )
        values[rel.pivot_local_key] = ref.id
        values[rel.pivot_related_key] = coerce_value(
            pivot.c[rel.pivot_related_key], related_id
        )
        await self._execute(insert(pivot).values(**values))

    async def detach_pivot(self, ref: OwnerRef, relation: str, related_id: Any) -> None:
        rel, pivot = self._pivot(ref, relation)
        stmt = delete(pivot).where(*self._pivot_clause(ref, rel, related_id))
        await self._execute(stmt)

    async def update_pivot(
        self, ref: OwnerRef, relation: str, related_id: Any, extra: Fields
    ) -> None:
        rel, pivot = self._pivot(ref, relation)
        skip = {rel.pivot_local_key, rel.pivot_related_key}
        skip.update(column.name for column in pivot.primary_key.columns)
        values = row_values(pivot, extra, skip=skip)
        if not values:
            return
        stmt = (
            update(pivot)
            .where(*self._pivot_clause(ref, rel, related_id))
            .values(**values)
        )
        await self._execute(stmt)
