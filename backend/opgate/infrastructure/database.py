"""Audit Database — optional async engine that stores finished audit records.

Invariants:
    - A failing session rolls back before the error leaves session()
    - SQLAlchemy exceptions surface as DatabaseError (core/errors.py), never raw
    - db_manager stays None when no database_url is configured
    - pool_pre_ping on every engine: stale connections are replaced, not reported

Design Decisions:
    - Module-level db_manager set by init_db from the app factory; the lifespan
      closes it (ADR: no global import side effects)
    - expire_on_commit=False: rows stay readable after the sink's commit
    - SQLite (local runs, tests) gets no pool sizing: its async pool rejects it
    - Error mapping is an ordered table, most specific class first
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.exc import (
    DBAPIError, IntegrityError, OperationalError, SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine,
)

from opgate.core.errors import DatabaseError
from opgate.db.base import Base

logger = logging.getLogger(__name__)

# (exception class, public message, failed step); first match wins
_ERROR_MAP: tuple[tuple[type[SQLAlchemyError], str, str], ...] = (
    (IntegrityError, "Integrity constraint violated", "commit"),
    (OperationalError, "Connection or operational error", "execute"),
    (DBAPIError, "Database driver error", "query"),
    (SQLAlchemyError, "Database operation failed", "unknown"),
)


def _to_database_error(exc: SQLAlchemyError) -> DatabaseError:
    for exc_type, message, step in _ERROR_MAP:
        if isinstance(exc, exc_type):
            return DatabaseError(message, step)
    return DatabaseError("Database operation failed", "unknown")


class DatabaseSessionManager:
    """Engine plus session factory for the audit_entries table."""

    def __init__(
        self, database_url: str, pool_size: int = 20, max_overflow: int = 10,
    ):
        options: dict = {"pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            options.update(
                pool_size=pool_size, max_overflow=max_overflow, pool_recycle=3600,
            )
        self.engine = create_async_engine(database_url, **options)
        self._sessions = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """One session; rolled back and mapped to DatabaseError on failure."""
        session = self._sessions()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"DB error ({type(e).__name__}): {e}")
            raise _to_database_error(e) from e
        finally:
            await session.close()

    async def create_tables(self) -> None:
        """Create missing tables (development / SQLite). Production uses alembic."""
        import opgate.models  # noqa: F401
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def health_check(self) -> bool:
        """True when a trivial query round-trips (readiness endpoint)."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
        except (DatabaseError, OSError) as e:
            logger.error(f"DB health check failed: {e}")
            return False
        return True

    async def close(self) -> None:
        await self.engine.dispose()


db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)
    return db_manager


async def close_db() -> None:
    global db_manager
    if db_manager is not None:
        await db_manager.close()
        db_manager = None
