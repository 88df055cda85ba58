"""
Database Session Management

This module owns the store handle. There is no module-level engine: the
process entry point constructs a Database, calls init() on startup and
close() on shutdown, and hands it to request handlers through app.state.

Key Features:
- Database abstraction: adapter chosen from the URL's dialect
- Connection pooling: configured per database type
- Async session management: proper async context management
- Error handling: automatic rollback on exceptions
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from shortlinks.db.interface import DatabaseAdapter
from shortlinks.db.postgres_adapter import PostgreSQLAdapter
from shortlinks.db.sqlite_adapter import SQLiteAdapter

logger = logging.getLogger(__name__)


def get_database_adapter(database_url: str) -> DatabaseAdapter:
    """
    Pick the adapter matching the URL's backend.

    Raises:
        ValueError: If the backend has no adapter
    """
    backend = make_url(database_url).get_backend_name()
    if backend == "sqlite":
        return SQLiteAdapter()
    if backend == "postgresql":
        return PostgreSQLAdapter()
    raise ValueError(f"Unsupported database backend: {backend}")


class Database:
    """
    Explicitly constructed store handle: one engine (and pool) per process.

    Usage:
        database = Database(settings.DATABASE_URL)
        await database.init()
        async with database.session() as session:
            ...
        await database.close()
    """

    def __init__(self, database_url: str, adapter: Optional[DatabaseAdapter] = None):
        self.database_url = database_url
        self.adapter = adapter or get_database_adapter(database_url)
        self._engine: Optional[AsyncEngine] = None
        self._session_maker: Optional[async_sessionmaker] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not initialized; call init() first")
        return self._engine

    async def init(self, create_tables: bool = False) -> None:
        """Create the engine and session factory, optionally creating missing tables."""
        if self._engine is not None:
            logger.warning("Database already initialized")
            return

        self._engine = self.adapter.create_engine(self.database_url)
        self._session_maker = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,  # Keep loaded attributes usable after commit
            autoflush=False,
        )

        if create_tables:
            # Import registers the table models on SQLModel.metadata
            from shortlinks.db import models  # noqa: F401

            async with self._engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

        logger.info(f"Database initialized: dialect={self.adapter.get_dialect_name()}")

    async def close(self) -> None:
        """Dispose of the engine and its connection pool."""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._session_maker = None
        logger.info("Database connections closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Open a session; uncommitted work is rolled back when the block exits."""
        if self._session_maker is None:
            raise RuntimeError("Database is not initialized; call init() first")
        async with self._session_maker() as session:
            yield session


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function for FastAPI to get database session.

    Sessions come from the Database stored on app.state by the entry point.
    Commits on success and rolls back on exception.

    Usage in FastAPI:
        @router.get("/endpoint")
        async def endpoint(session: AsyncSession = Depends(get_session)):
            pass
    """
    database: Database = request.app.state.database
    async with database.session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
