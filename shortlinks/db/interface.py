"""
Backend adapters for the link store.

An adapter knows how to build an AsyncEngine for one SQL dialect: which pool
to use, what to pass the driver, and which hooks make the quota check safe
under concurrent writers. Services never see the adapter, only sessions.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import Pool


class DatabaseAdapter(ABC):
    """
    Base class for dialect adapters.

    New backends subclass this and are registered in get_database_adapter().
    """

    def create_engine(self, database_url: str, **kwargs) -> AsyncEngine:
        """
        Build the engine for database_url and install the dialect hooks.

        Keyword arguments override the adapter's engine defaults.
        """
        engine_kwargs = self.get_engine_kwargs()
        engine_kwargs.update(kwargs)

        pool_class = self.get_pool_class()
        if pool_class is not None:
            engine_kwargs.setdefault("poolclass", pool_class)

        engine = create_async_engine(
            database_url,
            connect_args=self.get_connect_args(),
            **engine_kwargs
        )
        self.configure_engine(engine)
        return engine

    @abstractmethod
    def get_pool_class(self) -> Optional[type[Pool]]:
        """Pool class for the engine, or None for SQLAlchemy's default."""
        pass

    @abstractmethod
    def get_connect_args(self) -> dict[str, Any]:
        """Arguments handed to the DBAPI connect() call."""
        pass

    @abstractmethod
    def get_engine_kwargs(self) -> dict[str, Any]:
        pass

    @abstractmethod
    def configure_engine(self, engine: AsyncEngine) -> None:
        """
        Install dialect-specific hooks on a freshly created engine.

        The quota check and the record insert must run in one serialized
        write transaction per owner; each backend arranges that its own way.
        """
        pass

    @abstractmethod
    def get_dialect_name(self) -> str:
        """Dialect name used in logs, e.g. 'sqlite' or 'postgresql'."""
        pass
