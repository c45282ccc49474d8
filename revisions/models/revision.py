# revisions/models/revision.py

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from revisions.core.config import settings
from revisions.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Revision(Base):
    """
    ORM model for a stored snapshot of a versionable record.

    Each entry references its owner polymorphically by (owner_id, owner_type),
    optionally the user who caused it, and holds the snapshot document.
    Entries are never updated after insertion; they are only deleted.
    """

    __tablename__ = settings.REVISIONS_TABLE
    __table_args__ = (
        Index(f"ix_{settings.REVISIONS_TABLE}_owner", "owner_id", "owner_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Polymorphic owner reference; no FK so orphaned entries survive owner deletion
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    owner_type: Mapped[str] = mapped_column(String(255), nullable=False)

    # Opaque user reference
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    # Snapshot document: {"fields": {...}, "relations": {...}}
    snapshot: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        return (
            f"<Revision id={self.id} owner={self.owner_type}:{self.owner_id} "
            f"created_at={self.created_at}>"
        )
