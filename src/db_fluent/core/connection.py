"""Database connection management with SQLAlchemy."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from sqlalchemy import MetaData, Table
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from db_fluent.errors import ConfigurationError, DatabaseConnectionError

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """Manages a SQLAlchemy async engine, its pool and reflected tables."""

    def __init__(
        self,
        url: str,
        pool_size: Optional[int] = None,
        max_overflow: Optional[int] = None,
        pool_timeout: Optional[int] = None,
        echo_sql: bool = False,
    ):
        """
        Initialize database connection.

        Args:
            url: SQLAlchemy URL with an async driver (e.g. sqlite+aiosqlite:///a.db)
            pool_size: Connection pool size (ignored for SQLite)
            max_overflow: Maximum overflow connections (ignored for SQLite)
            pool_timeout: Pool checkout timeout in seconds
            echo_sql: Echo SQL through the sqlalchemy.engine logger

        Raises:
            ConfigurationError: If the URL cannot be parsed
        """
        try:
            self._url: URL = make_url(url)
        except (SQLAlchemyError, ValueError) as e:
            raise ConfigurationError(f"Invalid database URL: {e}") from e

        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.pool_timeout = pool_timeout
        self.echo_sql = echo_sql
        self.engine: Optional[AsyncEngine] = None
        self._dialect = self._url.get_backend_name()
        self._driver = self._url.get_driver_name()
        self._tables: dict[str, Table] = {}

    async def initialize(self) -> None:
        """Create the async engine."""
        if self.engine is not None:
            return  # Already initialized

        url_obj = self._url
        connect_args: dict[str, Any] = {}
        if self._dialect == "postgresql" and self._driver == "asyncpg":
            # asyncpg expects 'ssl' in connect_args, not 'sslmode' in the URL
            if "sslmode" in url_obj.query:
                sslmode = url_obj.query["sslmode"]
                if sslmode in ["require", "prefer", "allow", "verify-ca", "verify-full"]:
                    connect_args["ssl"] = sslmode
                elif sslmode == "disable":
                    connect_args["ssl"] = False
                url_obj = url_obj.difference_update_query(["sslmode"])

        engine_args: dict[str, Any] = {
            "pool_pre_ping": True,
            "echo": self.echo_sql,
            "connect_args": connect_args,
        }
        # SQLite pools (NullPool/StaticPool for :memory:) reject sizing arguments
        if self._dialect != "sqlite":
            if self.pool_size is not None:
                engine_args["pool_size"] = self.pool_size
            if self.max_overflow is not None:
                engine_args["max_overflow"] = self.max_overflow
            if self.pool_timeout is not None:
                engine_args["pool_timeout"] = self.pool_timeout

        try:
            self.engine = create_async_engine(url_obj, **engine_args)
        except (SQLAlchemyError, ImportError, TypeError) as e:
            raise ConfigurationError(
                f"Cannot create engine for {self._dialect}+{self._driver}: {e}"
            ) from e

        logger.info(f"Initialized {self._dialect}+{self._driver} engine")

    async def dispose(self) -> None:
        """Dispose of the connection pool and cleanup resources."""
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self._tables.clear()
            logger.info(f"Disposed {self._dialect}+{self._driver} engine")

    def _require_engine(self) -> AsyncEngine:
        if self.engine is None:
            raise DatabaseConnectionError(
                "DatabaseConnection not initialized. Call initialize() first."
            )
        return self.engine

    @asynccontextmanager
    async def get_connection(self) -> AsyncGenerator[AsyncConnection, None]:
        """
        Get a pooled connection running one transaction.

        The transaction commits when the block exits normally and rolls back
        when it raises.

        Raises:
            DatabaseConnectionError: If engine not initialized
        """
        engine = self._require_engine()
        async with engine.begin() as conn:
            yield conn

    async def connect(self) -> AsyncConnection:
        """Check out a dedicated connection with an open transaction."""
        engine = self._require_engine()
        conn = await engine.connect()
        try:
            await conn.begin()
        except BaseException:
            await conn.close()
            raise
        return conn

    async def reflect_table(self, conn: AsyncConnection, name: str) -> Table:
        """
        Reflect ``name`` (optionally ``schema.table``), caching the result.

        Args:
            conn: Connection used for reflection
            name: Table name
        """
        table = self._tables.get(name)
        if table is not None:
            return table

        schema, _, table_name = name.rpartition(".")

        def reflect(sync_conn):
            return Table(
                table_name,
                MetaData(),
                schema=schema or None,
                autoload_with=sync_conn,
            )

        table = await conn.run_sync(reflect)
        self._tables[name] = table
        return table

    def forget_tables(self) -> None:
        """Drop cached reflections (after DDL)."""
        self._tables.clear()

    @property
    def dialect(self) -> str:
        """Get database dialect name."""
        return self._dialect

    @property
    def driver(self) -> str:
        """Get database driver name."""
        return self._driver

    @property
    def server_version_info(self) -> Optional[tuple[Any, ...]]:
        """Server version reported by the dialect after the first connect."""
        if self.engine is None:
            return None
        return self.engine.sync_engine.dialect.server_version_info
