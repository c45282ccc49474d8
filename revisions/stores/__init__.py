from revisions.stores.base import RecordStore
from revisions.stores.table_store import TableRecordStore

__all__ = ["RecordStore", "TableRecordStore"]
