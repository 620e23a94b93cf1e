"""SQLAlchemy backend and the ``sqlalchemy`` provider.

Queries are rendered to SQL text from the accumulated QueryState and run
through ``sqlalchemy.text`` with numbered bind parameters. Inserts, and
updates/deletes by record, reflect the target table to learn its primary
key.
"""

import asyncio
import logging
import os
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional, Sequence

from sqlalchemy import Table, insert, text
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from db_fluent.adapters import capabilities_for
from db_fluent.adapters.base import BaseBackend, BufferedResultSet, ResultSet
from db_fluent.core.binding import bind_names, number_placeholders
from db_fluent.core.connection import DatabaseConnection
from db_fluent.core.records import is_blank, is_record, record_values, set_record_value
from db_fluent.core.session import Database
from db_fluent.errors import (
    BackendError,
    BindingError,
    ConfigurationError,
    DatabaseConnectionError,
    DBFluentError,
    QueryStateError,
    TransactionStateError,
)
from db_fluent.models.capabilities import BackendCapabilities
from db_fluent.models.query import Predicate, QueryState
from db_fluent.models.result import ExecResult
from db_fluent.registry import ProviderRegistry, default_registry

logger = logging.getLogger(__name__)

PROVIDER_NAME = "sqlalchemy"
ECHO_ENV = "DB_FLUENT_ECHO_SQL"

_DDL_RE = re.compile(r"^\s*(CREATE|ALTER|DROP|RENAME|TRUNCATE)\b", re.IGNORECASE)


def _render_where(predicates: Sequence[Predicate]) -> tuple[str, list[Any]]:
    if not predicates:
        return "", []
    params: list[Any] = []
    for predicate in predicates:
        params.extend(predicate.params)
    if len(predicates) == 1:
        return f" WHERE {predicates[0].fragment}", params
    clause = " AND ".join(f"({p.fragment})" for p in predicates)
    return f" WHERE {clause}", params


def render_from(state: QueryState) -> tuple[str, list[Any]]:
    """FROM/JOIN/WHERE part of a query, with ``?`` placeholders."""
    sql = f" FROM {state.table}"
    for join in state.joins:
        sql += f" {join.render()}"
    where, params = _render_where(state.predicates)
    return sql + where, params


def render_select(state: QueryState) -> tuple[str, list[Any]]:
    """
    Render a SELECT for ``state``.

    Returns:
        Tuple of (SQL with ? placeholders, flat parameters)
    """
    from_sql, params = render_from(state)
    sql = f"SELECT {state.projection}{from_sql}"
    if state.group_by:
        sql += f" GROUP BY {', '.join(state.group_by)}"
    if state.having is not None:
        sql += f" HAVING {state.having.fragment}"
        params.extend(state.having.params)
    if state.order_by:
        sql += f" ORDER BY {', '.join(state.order_by)}"
    if state.limit is not None:
        sql += f" LIMIT {int(state.limit)}"
        if state.offset:
            sql += f" OFFSET {int(state.offset)}"
    return sql, params


def render_count(state: QueryState) -> tuple[str, list[Any]]:
    """
    Render a COUNT(*) over the rows ``state`` selects.

    An explicit projection (``DISTINCT`` included), grouping or paging is
    counted through a subquery.
    """
    if (
        state.columns
        or state.group_by
        or state.having is not None
        or state.limit is not None
    ):
        inner, params = render_select(state.derive(order_by=()))
        return f"SELECT COUNT(*) FROM ({inner}) AS count_subquery", params
    from_sql, params = render_from(state)
    return f"SELECT COUNT(*){from_sql}", params


def compile_text(sql: str, params: Sequence[Any]):
    """Turn ``?`` SQL plus positional params into a text() clause and bind dict."""
    numbered, _ = number_placeholders(sql)
    return text(numbered), bind_names(params)


def _last_insert_id(result: Any) -> Optional[int]:
    try:
        value = result.lastrowid
    except (AttributeError, NotImplementedError, SQLAlchemyError):
        return None
    return value if isinstance(value, int) and value > 0 else None


class SQLAlchemyBackend(BaseBackend):
    """Backend over a SQLAlchemy async engine.

    Without ``conn`` every operation runs on a pooled connection inside its
    own short transaction. With ``conn`` the backend is bound to that
    connection's open transaction until ``commit()`` or ``rollback()``.
    """

    def __init__(
        self,
        connection: DatabaseConnection,
        conn: Optional[AsyncConnection] = None,
    ):
        self.connection = connection
        self._conn = conn
        self._capabilities: Optional[BackendCapabilities] = None

    @property
    def capabilities(self) -> BackendCapabilities:
        if self._capabilities is None:
            capabilities = capabilities_for(
                self.connection.dialect, self.connection.server_version_info
            )
            if self.connection.server_version_info is None:
                return capabilities
            self._capabilities = capabilities
        return self._capabilities

    @property
    def dialect(self) -> str:
        return self.connection.dialect

    @property
    def driver(self) -> str:
        return self.connection.driver

    @property
    def provider(self) -> Any:
        return self.connection.engine

    @property
    def in_transaction(self) -> bool:
        return self._conn is not None

    @asynccontextmanager
    async def _scope(
        self, operation: str, table: Optional[str] = None
    ) -> AsyncGenerator[AsyncConnection, None]:
        """Yield the connection for one operation, translating backend errors."""
        try:
            if self._conn is not None:
                yield self._conn
            else:
                async with self.connection.get_connection() as conn:
                    yield conn
        except SQLAlchemyError as e:
            raise BackendError(str(e), operation=operation, table=table) from e

    async def _run(self, conn: AsyncConnection, operation: str, sql: str, params: Sequence[Any]):
        clause, binds = compile_text(sql, params)
        logger.debug(f"{operation}: {clause.text} {binds}")
        return await conn.execute(clause, binds)

    # Transactions

    async def begin(self, timeout: Optional[float] = None) -> "SQLAlchemyBackend":
        if self._conn is not None:
            raise TransactionStateError("nested transactions are not supported", operation="begin")
        try:
            conn = await asyncio.wait_for(self.connection.connect(), timeout)
        except SQLAlchemyError as e:
            raise BackendError(str(e), operation="begin") from e
        backend = SQLAlchemyBackend(self.connection, conn=conn)
        backend._capabilities = self._capabilities
        return backend

    async def _finish(self, operation: str, timeout: Optional[float]) -> None:
        if self._conn is None:
            raise TransactionStateError("not in a transaction", operation=operation)
        conn, self._conn = self._conn, None
        try:
            if operation == "commit":
                await asyncio.wait_for(conn.commit(), timeout)
            else:
                await asyncio.wait_for(conn.rollback(), timeout)
        except SQLAlchemyError as e:
            raise BackendError(str(e), operation=operation) from e
        finally:
            await conn.close()

    async def commit(self, timeout: Optional[float] = None) -> None:
        await self._finish("commit", timeout)

    async def rollback(self, timeout: Optional[float] = None) -> None:
        await self._finish("rollback", timeout)

    # Raw SQL

    async def execute(
        self,
        sql: str,
        params: Sequence[Any] = (),
        timeout: Optional[float] = None,
    ) -> ExecResult:
        return await asyncio.wait_for(self._execute(sql, params), timeout)

    async def _execute(self, sql: str, params: Sequence[Any]) -> ExecResult:
        async with self._scope("exec") as conn:
            result = await self._run(conn, "exec", sql, params)
            rowcount = result.rowcount if result.rowcount and result.rowcount > 0 else 0
            last_id = _last_insert_id(result)
            result.close()

        if _DDL_RE.match(sql):
            self.connection.forget_tables()
        return ExecResult(rows_affected=rowcount, last_insert_id=last_id)

    # Built queries

    async def select(
        self, state: QueryState, timeout: Optional[float] = None
    ) -> ResultSet:
        return await asyncio.wait_for(self._select(state), timeout)

    async def _select(self, state: QueryState) -> ResultSet:
        sql, params = render_select(state)
        async with self._scope("select", state.table) as conn:
            result = await self._run(conn, "select", sql, params)
            columns = list(result.keys())
            rows = result.fetchall()
        return BufferedResultSet(columns, rows)

    async def count(self, state: QueryState, timeout: Optional[float] = None) -> int:
        return await asyncio.wait_for(self._count(state), timeout)

    async def _count(self, state: QueryState) -> int:
        sql, params = render_count(state)
        async with self._scope("count", state.table) as conn:
            result = await self._run(conn, "count", sql, params)
            value = result.scalar_one()
        return int(value)

    async def create(
        self,
        table: str,
        records: Sequence[Any],
        timeout: Optional[float] = None,
    ) -> None:
        await asyncio.wait_for(self._create(table, records), timeout)

    async def _create(self, table_name: str, records: Sequence[Any]) -> None:
        async with self._scope("create", table_name) as conn:
            table = await self.connection.reflect_table(conn, table_name)
            columns = {c.name.lower(): c for c in table.columns}
            primary_key = list(table.primary_key.columns)

            for record in records:
                row: dict[str, Any] = {}
                for key, value in record_values(record).items():
                    column = columns.get(key.lower())
                    if column is None:
                        if is_record(record):
                            continue
                        raise BindingError(
                            f"unknown column {key!r}", operation="create", table=table_name
                        )
                    if column.primary_key and is_blank(value):
                        continue
                    row[column.name] = value

                result = await conn.execute(insert(table).values(row))
                logger.debug(f"create: {table_name} {row}")

                if not is_record(record):
                    continue
                generated = result.inserted_primary_key or ()
                current = record_values(record)
                for column, value in zip(primary_key, generated):
                    if value is not None and is_blank(_lookup(current, column.name)):
                        set_record_value(record, column.name, value)

    async def update(
        self,
        state: QueryState,
        values: Any,
        allow_all: bool = False,
        timeout: Optional[float] = None,
    ) -> int:
        return await asyncio.wait_for(self._update(state, values, allow_all), timeout)

    async def _update(self, state: QueryState, values: Any, allow_all: bool) -> int:
        self._reject_joins(state, "update")
        async with self._scope("update", state.table) as conn:
            if is_record(values):
                assignments, key_predicates = await self._record_assignments(
                    conn, state.table, values
                )
                quote = conn.dialect.identifier_preparer.quote
                assignments = {quote(k): v for k, v in assignments.items()}
            else:
                assignments, key_predicates = dict(values), []

            if not assignments:
                raise BindingError("nothing to update", operation="update", table=state.table)
            predicates = state.predicates + tuple(key_predicates)
            self._require_scope(predicates, allow_all, "update", state.table)

            set_sql = ", ".join(f"{column} = ?" for column in assignments)
            where, params = _render_where(predicates)
            sql = f"UPDATE {state.table} SET {set_sql}{where}"
            result = await self._run(
                conn, "update", sql, list(assignments.values()) + params
            )
            return max(result.rowcount or 0, 0)

    async def delete(
        self,
        state: QueryState,
        record: Any = None,
        allow_all: bool = False,
        timeout: Optional[float] = None,
    ) -> int:
        return await asyncio.wait_for(self._delete(state, record, allow_all), timeout)

    async def _delete(self, state: QueryState, record: Any, allow_all: bool) -> int:
        self._reject_joins(state, "delete")
        async with self._scope("delete", state.table) as conn:
            key_predicates: list[Predicate] = []
            if record is not None:
                _, key_predicates = await self._record_assignments(conn, state.table, record)
            predicates = state.predicates + tuple(key_predicates)
            self._require_scope(predicates, allow_all, "delete", state.table)

            where, params = _render_where(predicates)
            result = await self._run(conn, "delete", f"DELETE FROM {state.table}{where}", params)
            return max(result.rowcount or 0, 0)

    async def _record_assignments(
        self, conn: AsyncConnection, table_name: str, record: Any
    ) -> tuple[dict[str, Any], list[Predicate]]:
        """Split a record into SET assignments and primary-key predicates."""
        table: Table = await self.connection.reflect_table(conn, table_name)
        columns = {c.name.lower(): c for c in table.columns}

        assignments: dict[str, Any] = {}
        key_predicates: list[Predicate] = []
        for key, value in record_values(record).items():
            column = columns.get(key.lower())
            if column is None:
                continue
            if column.primary_key:
                if not is_blank(value):
                    key_predicates.append(
                        Predicate(fragment=f"{column.name} = ?", params=(value,))
                    )
            elif value is not None:
                assignments[column.name] = value
        return assignments, key_predicates

    @staticmethod
    def _reject_joins(state: QueryState, operation: str) -> None:
        if state.joins:
            raise QueryStateError(
                f"{operation} does not support joins", operation=operation, table=state.table
            )

    @staticmethod
    def _require_scope(
        predicates: Sequence[Predicate], allow_all: bool, operation: str, table: str
    ) -> None:
        if not predicates and not allow_all:
            raise QueryStateError(
                f"refusing to {operation} every row; add a predicate, pass a keyed "
                "record or set allow_all=True",
                operation=operation,
                table=table,
            )

    # Lifecycle

    async def ping(self, timeout: Optional[float] = None) -> None:
        try:
            async with self._scope("ping") as conn:
                await asyncio.wait_for(conn.execute(text("SELECT 1")), timeout)
        except (BackendError, OSError) as e:
            raise DatabaseConnectionError(f"ping failed: {e}", operation="ping") from e

    async def close(self) -> None:
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await conn.close()
            return
        await self.connection.dispose()


def _lookup(values: dict[str, Any], column: str) -> Any:
    for key, value in values.items():
        if key.lower() == column.lower():
            return value
    return None


def _is_truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


async def open_sqlalchemy(driver: str, dsn: str, **options: Any) -> Database:
    """
    Provider factory for the ``sqlalchemy`` provider.

    Args:
        driver: SQLAlchemy drivername with an async driver, e.g. ``sqlite+aiosqlite``
        dsn: A full URL (``driver`` then replaces its drivername) or, without
            ``://``, the database name / SQLite file path
        **options: ``pool_size``, ``max_overflow``, ``pool_timeout``, ``echo_sql``

    Raises:
        ConfigurationError: If the URL or options are invalid
        DatabaseConnectionError: If the database cannot be reached
    """
    try:
        if "://" in dsn:
            url = make_url(dsn)
            if driver:
                url = url.set(drivername=driver)
        else:
            url = URL.create(driver, database=dsn)
    except (SQLAlchemyError, ValueError) as e:
        raise ConfigurationError(f"Invalid data source {dsn!r}: {e}") from e

    if options.get("echo_sql") is None:
        options["echo_sql"] = _is_truthy(os.getenv(ECHO_ENV))

    try:
        connection = DatabaseConnection(
            url.render_as_string(hide_password=False), **options
        )
    except TypeError as e:
        raise ConfigurationError(f"Unknown provider option: {e}") from e

    await connection.initialize()
    backend = SQLAlchemyBackend(connection)
    try:
        await backend.ping()
        capabilities = backend.capabilities
    except DBFluentError:
        await connection.dispose()
        raise

    logger.info(
        f"Opened {connection.dialect}+{connection.driver} database "
        f"(supports: {', '.join(capabilities.get_supported_features()) or 'none'}; "
        f"lacks: {', '.join(capabilities.get_unsupported_features()) or 'none'})"
    )
    return Database(backend)


def register_builtin_providers(registry: ProviderRegistry) -> None:
    """Install the ``sqlalchemy`` provider into ``registry`` if missing."""
    if PROVIDER_NAME not in registry:
        registry.register(PROVIDER_NAME, open_sqlalchemy)


register_builtin_providers(default_registry)
