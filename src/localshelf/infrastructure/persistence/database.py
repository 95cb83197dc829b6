"""Database session management."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from localshelf.config import Settings

logger = logging.getLogger(__name__)


class Database:
    """Database connection and session manager."""

    def __init__(self, settings: Settings) -> None:
        """Initialize database with settings."""
        self.settings = settings
        self.url = settings.database_url

        engine_kwargs: dict[str, Any] = {"echo": settings.database.echo}

        if "sqlite" in self.url:
            engine_kwargs["connect_args"] = {
                "check_same_thread": False,
                "timeout": settings.database.busy_timeout,  # Wait for lock
            }

        self._engine = create_async_engine(self.url, **engine_kwargs)

        if "sqlite" in self.url:
            self._enable_sqlite_pragmas()

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @property
    def file_path(self) -> Path | None:
        """Path of the SQLite file, None for in-memory or non-SQLite URLs."""
        database = make_url(self.url).database
        if not database or database == ":memory:":
            return None
        return Path(database)

    def _enable_sqlite_pragmas(self) -> None:
        """Enable WAL journaling and foreign keys for SQLite.

        Hey future me - WAL is what makes the catalog usable while a scan is writing:
        readers don't block on the writer. It leaves -wal/-shm companion files next to
        the DB, that's expected.
        """

        @event.listens_for(self._engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn: Any, _connection_record: Any) -> None:
            """Set SQLite pragmas on connection."""
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
            logger.debug("Enabled WAL + foreign keys for SQLite connection")

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for database operations."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                # Rollback on any exception - this is intentionally broad to ensure
                # transaction integrity. All exceptions are re-raised for proper handling.
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self) -> None:
        """Close database connection."""
        await self._engine.dispose()

    async def create_tables(self) -> None:
        """Create all tables that don't exist yet."""
        from localshelf.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
