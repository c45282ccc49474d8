from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import declarative_base

# Base class for the revisions ORM models.
# Host tables live in their own metadata; only Revision is mapped here.
Base = declarative_base()


def dialect_name(db: AsyncSession) -> str:
    """Name of the dialect the session is bound to, e.g. "postgresql"."""
    return db.get_bind().dialect.name
