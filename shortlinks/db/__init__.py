"""
Database module with abstraction layer.

This module provides:
- DatabaseAdapter interface: Abstract base class for database implementations
- SQLiteAdapter / PostgreSQLAdapter: backend-specific implementations
- Database: the explicitly constructed store handle
- get_session: FastAPI dependency yielding sessions from app.state.database
"""

from shortlinks.db.interface import DatabaseAdapter
from shortlinks.db.session import Database, get_database_adapter, get_session

__all__ = [
    "Database",
    "DatabaseAdapter",
    "get_database_adapter",
    "get_session",
]
