"""
PostgreSQL Database Adapter

Used in production via DATABASE_URL=postgresql+asyncpg://...

PostgreSQL enforces the short_code unique constraint at insert time and the
conditional quota UPDATE takes a row lock on the owner, so no engine hooks
are needed beyond pool sizing.
"""

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.pool import Pool

from shortlinks.db.interface import DatabaseAdapter


class PostgreSQLAdapter(DatabaseAdapter):
    """PostgreSQL database adapter using asyncpg and SQLAlchemy's default queue pool."""

    def __init__(self, pool_size: int = 10, max_overflow: int = 20):
        self.pool_size = pool_size
        self.max_overflow = max_overflow

    def get_pool_class(self) -> Optional[type[Pool]]:
        return None

    def get_connect_args(self) -> dict[str, Any]:
        return {}

    def get_engine_kwargs(self) -> dict[str, Any]:
        return {
            "echo": False,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_pre_ping": True,
        }

    def configure_engine(self, engine: AsyncEngine) -> None:
        pass

    def get_dialect_name(self) -> str:
        return "postgresql"
