"""
SQLite adapter (aiosqlite driver).

The default store for development, tests and single-instance deployments.
SQLite allows one writer at a time, which this adapter leans on: every
transaction takes the write lock when it begins.
"""

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.pool import NullPool

from shortlinks.core.setting import settings
from shortlinks.db.interface import DatabaseAdapter

# Seconds a connection waits on a locked database before failing
BUSY_TIMEOUT = 30


class SQLiteAdapter(DatabaseAdapter):
    """
    Every transaction is opened with BEGIN IMMEDIATE so the write lock is
    taken up front. Concurrent creators then queue on the busy timeout instead
    of deadlocking while upgrading a read lock, which is what keeps the
    count-then-insert quota check serialized.
    """

    def get_pool_class(self) -> type[NullPool]:
        # One connection per session; concurrent sessions queue on the file lock
        return NullPool

    def get_connect_args(self) -> dict[str, Any]:
        return {
            "check_same_thread": False,
            "timeout": BUSY_TIMEOUT,
        }

    def get_engine_kwargs(self) -> dict[str, Any]:
        return {"echo": settings.LOG_LEVEL.upper() == "DEBUG"}

    def configure_engine(self, engine: AsyncEngine) -> None:
        """
        Take over transaction control from the driver.

        The driver's implicit BEGIN is disabled and replaced with
        BEGIN IMMEDIATE; COMMIT/ROLLBACK are still emitted by the driver.
        Foreign keys are off by default in SQLite and are switched on here.
        """
        @event.listens_for(engine.sync_engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    def get_dialect_name(self) -> str:
        return "sqlite"
