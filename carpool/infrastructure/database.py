"""
Async SQLAlchemy engine and session factory.

Uses ``asyncpg`` as the PostgreSQL driver for non-blocking I/O.  Services
open one session per operation from ``async_session_factory``; tests build
their own factory over SQLite with :func:`make_session_factory`.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from carpool.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=20,
    max_overflow=10,
)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: services hand committed rows to the API layer
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


async_session_factory = make_session_factory(engine)


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""
