# revisions/stores/base.py

import abc
from typing import Any, List

from sqlalchemy.ext.asyncio import AsyncSession

from revisions.registry import RecordRegistry
from revisions.schemas.record import OwnerRef, RelatedRow, VersionableRecord
from revisions.schemas.snapshot import Fields


class RecordStore(abc.ABC):
    """
    Persistence boundary for versionable records and their relations.

    A store is bound to one AsyncSession; revisions are written through the
    same session so a rollback commits or aborts as a single transaction.
    Relation methods take the owner reference and the relation name as
    registered on the owner's RecordType.
    """

    def __init__(self, db: AsyncSession, registry: RecordRegistry):
        self.db = db
        self.registry = registry

    async def load_record(self, ref: OwnerRef) -> VersionableRecord:
        return VersionableRecord(ref=ref, fields=await self.get_fields(ref))

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()

    @abc.abstractmethod
    async def get_fields(self, ref: OwnerRef) -> Fields:
        """Current field map of the record; NotFoundError if it does not exist."""

    @abc.abstractmethod
    async def update_fields(self, ref: OwnerRef, fields: Fields) -> None:
        """Write the given fields onto the record, leaving others untouched."""

    @abc.abstractmethod
    async def list_related(self, ref: OwnerRef, relation: str) -> List[RelatedRow]:
        """Related records in relation order, with pivot rows for many-to-many."""

    @abc.abstractmethod
    async def related_exists(self, ref: OwnerRef, relation: str, related_id: Any) -> bool:
        """Whether a record with this id exists in the relation's related table."""

    @abc.abstractmethod
    async def create_related(self, ref: OwnerRef, relation: str, fields: Fields) -> Any:
        """
        Insert a related record; returns its id.

        A captured id in `fields` is kept, so a re-created record is the same
        record. Implementations must advance any id sequence past it.
        """

    @abc.abstractmethod
    async def update_related(
        self, ref: OwnerRef, relation: str, related_id: Any, fields: Fields
    ) -> None:
        pass

    @abc.abstractmethod
    async def delete_related(self, ref: OwnerRef, relation: str, related_id: Any) -> None:
        pass

    @abc.abstractmethod
    async def attach_pivot(
        self, ref: OwnerRef, relation: str, related_id: Any, extra: Fields
    ) -> None:
        pass

    @abc.abstractmethod
    async def detach_pivot(self, ref: OwnerRef, relation: str, related_id: Any) -> None:
        pass

    @abc.abstractmethod
    async def update_pivot(
        self, ref: OwnerRef, relation: str, related_id: Any, extra: Fields
    ) -> None:
        pass
