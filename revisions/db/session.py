from functools import lru_cache
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from revisions.core.config import settings


@lru_cache(maxsize=None)
def get_engine() -> AsyncEngine:
    """
    Engine for the configured DATABASE_URL, built on first use.
    Hosts that manage their own engine never call this.
    """
    return create_async_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)


@lru_cache(maxsize=None)
def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    # Revision objects stay readable after the commit that stored them
    return async_sessionmaker(get_engine(), expire_on_commit=False, class_=AsyncSession)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a session from the default session factory and close it afterwards.
    """
    async with get_sessionmaker()() as session:
        yield session
