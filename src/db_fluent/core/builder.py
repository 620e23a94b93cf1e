"""Tiered, immutable query statements.

``Session.table()`` returns a :class:`TableStatement`. Each tier only offers
the calls that are legal at that point of the chain and returns the class of
its own tier, so a chain narrows as it goes::

    TableStatement      join, left_join, right_join, select, create
    ConditionStatement  where, where_eq, where_in, where_between, where_like
    AggregateStatement  group_by, order_by, having, limit_offset
    StatementRunner     all, single, fetch_column, count, update, delete

Statements never mutate: every call returns a new statement carrying a new
QueryState, so a base statement can be shared to derive several queries.

Repeating ``select``, ``group_by``, ``order_by``, ``having`` or
``limit_offset`` replaces the earlier clause. Joins and ``where`` calls
accumulate; predicates are combined with AND.
"""

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Optional, TypeVar

from db_fluent.adapters.base import BaseBackend
from db_fluent.core import binding
from db_fluent.core.cursor import Cursor, Row
from db_fluent.core.records import is_record
from db_fluent.errors import BackendError, BindingError, NotFoundError, QueryStateError
from db_fluent.models.query import JoinKind, JoinSpec, Predicate, QueryState

if TYPE_CHECKING:
    from db_fluent.core.session import Session

logger = logging.getLogger(__name__)

S = TypeVar("S", bound="StatementRunner")


class StatementRunner:
    """Terminal tier: executes the accumulated query."""

    def __init__(self, session: "Session", state: QueryState):
        self._session = session
        self._state = state

    @property
    def state(self) -> QueryState:
        """The accumulated, immutable query state."""
        return self._state

    def _derive(self, cls: type[S], **changes: Any) -> S:
        return cls(self._session, self._state.derive(**changes))

    def _backend(self, operation: str) -> BaseBackend:
        backend = self._session.backend
        if not backend.capabilities.right_join and any(
            join.kind is JoinKind.RIGHT for join in self._state.joins
        ):
            raise BackendError(
                f"{backend.dialect} does not support RIGHT JOIN",
                operation=operation,
                table=self._state.table,
            )
        logger.debug(f"dispatching {operation} on {self._state.table}")
        return backend

    async def all(self, timeout: Optional[float] = None) -> Cursor:
        """Run the query and return a cursor over every matching row."""
        backend = self._backend("select")
        result = await backend.select(self._state, timeout=timeout)
        return Cursor(result)

    async def single(self, timeout: Optional[float] = None) -> Row:
        """
        Run the query for its first row.

        Raises:
            NotFoundError: If no row matches
        """
        backend = self._backend("single")
        result = await backend.select(self._state.derive(limit=1), timeout=timeout)
        try:
            columns = result.columns
            values = await result.fetchone()
        finally:
            await result.close()

        if values is None:
            raise NotFoundError(
                "query returned no rows", operation="single", table=self._state.table
            )
        return Row(columns, values)

    async def fetch_column(self, column: str, timeout: Optional[float] = None) -> Cursor:
        """Select only ``column`` and return a cursor in pluck mode."""
        if not column or not column.strip():
            raise QueryStateError("fetch_column needs a column", table=self._state.table)
        backend = self._backend("fetch_column")
        result = await backend.select(
            self._state.derive(columns=(column,)), timeout=timeout
        )
        return Cursor(result, pluck=True)

    async def count(self, timeout: Optional[float] = None) -> int:
        """Count the rows the query selects."""
        backend = self._backend("count")
        return await backend.count(self._state, timeout=timeout)

    async def update(
        self,
        values: Any,
        allow_all: bool = False,
        timeout: Optional[float] = None,
    ) -> int:
        """
        Update the rows the query selects.

        Args:
            values: Mapping of column -> value, or a record. A record writes its
                non-None, non-key fields and, when its key is set, restricts the
                update to that key.
            allow_all: Permit an update without any predicate or key

        Returns:
            Number of affected rows
        """
        if not isinstance(values, Mapping) and not is_record(values):
            raise BindingError(
                f"update values must be a mapping or a record, not {type(values).__name__}",
                operation="update",
                table=self._state.table,
            )
        if isinstance(values, Mapping) and not values:
            raise BindingError("nothing to update", operation="update", table=self._state.table)
        backend = self._backend("update")
        return await backend.update(
            self._state, values, allow_all=allow_all, timeout=timeout
        )

    async def delete(
        self,
        record: Any = None,
        allow_all: bool = False,
        timeout: Optional[float] = None,
    ) -> int:
        """
        Delete the rows the query selects.

        Args:
            record: Optional record whose key further restricts the delete
            allow_all: Permit a delete without any predicate or key

        Returns:
            Number of deleted rows
        """
        if record is not None and not is_record(record):
            raise BindingError(
                f"delete target must be a record, not {type(record).__name__}",
                operation="delete",
                table=self._state.table,
            )
        backend = self._backend("delete")
        return await backend.delete(
            self._state, record, allow_all=allow_all, timeout=timeout
        )


class AggregateStatement(StatementRunner):
    """Grouping, ordering and paging tier."""

    def group_by(self, *columns: str) -> "AggregateStatement":
        return self._derive(AggregateStatement, group_by=tuple(columns))

    def order_by(self, *columns: str) -> "AggregateStatement":
        return self._derive(AggregateStatement, order_by=tuple(columns))

    def having(self, condition: str, *args: Any) -> "AggregateStatement":
        return self._derive(AggregateStatement, having=binding.bind(condition, *args))

    def limit_offset(self, limit: int, offset: int = 0) -> "AggregateStatement":
        for name, value in (("limit", limit), ("offset", offset)):
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise QueryStateError(
                    f"{name} must be a non-negative integer, got {value!r}",
                    table=self._state.table,
                )
        return self._derive(AggregateStatement, limit=limit, offset=offset)


class ConditionStatement(AggregateStatement):
    """Predicate tier."""

    def _where(self, predicate: Predicate) -> "ConditionStatement":
        return self._derive(
            ConditionStatement, predicates=self._state.predicates + (predicate,)
        )

    def where(self, condition: str, *args: Any) -> "ConditionStatement":
        """
        Add a raw predicate with ``?`` placeholders.

        A single list or tuple argument is expanded into the placeholders; wrap a
        value in ``Param`` to bind a list or tuple as one parameter.
        """
        return self._where(binding.bind(condition, *args))

    def where_eq(self, column: str, value: Any) -> "ConditionStatement":
        """``column = value``; None becomes ``column IS NULL``."""
        return self._where(binding.bind_eq(column, value))

    def where_in(self, column: str, *values: Any) -> "ConditionStatement":
        """``column IN (...)`` from the arguments or from one sequence argument."""
        return self._where(binding.bind_in(column, *values))

    def where_between(self, column: str, lower: Any, upper: Any) -> "ConditionStatement":
        """Inclusive range predicate."""
        return self._where(binding.bind_between(column, lower, upper))

    def where_like(self, column: str, pattern: str) -> "ConditionStatement":
        """LIKE predicate; wildcards are not escaped."""
        return self._where(binding.bind_like(column, pattern))


class TableStatement(ConditionStatement):
    """Entry tier returned by ``Session.table()``."""

    def _join(self, kind: JoinKind, table: str, condition: str) -> "TableStatement":
        if not table or not condition:
            raise QueryStateError(
                f"{kind.keyword} needs a table and a condition", table=self._state.table
            )
        spec = JoinSpec(kind=kind, table=table, condition=condition)
        return self._derive(TableStatement, joins=self._state.joins + (spec,))

    def join(self, table: str, condition: str) -> "TableStatement":
        return self._join(JoinKind.INNER, table, condition)

    def left_join(self, table: str, condition: str) -> "TableStatement":
        return self._join(JoinKind.LEFT, table, condition)

    def right_join(self, table: str, condition: str) -> "TableStatement":
        return self._join(JoinKind.RIGHT, table, condition)

    def select(self, *columns: str) -> "TableStatement":
        """Replace the projection. No columns selects every column."""
        return self._derive(TableStatement, columns=tuple(columns))

    async def create(self, *records: Any, timeout: Optional[float] = None) -> None:
        """
        Insert one or more records (or mappings) into the table.

        A single list or tuple argument is treated as the records to insert.
        Records whose primary key is blank (None or 0) get the generated key
        written back.
        """
        if len(records) == 1 and isinstance(records[0], (list, tuple)):
            records = tuple(records[0])
        if not records:
            return
        for record in records:
            if not isinstance(record, Mapping) and not is_record(record):
                raise BindingError(
                    f"cannot insert {type(record).__name__}; "
                    "use a dataclass, a pydantic model or a mapping",
                    operation="create",
                    table=self._state.table,
                )
        backend = self._backend("create")
        await backend.create(self._state.table, list(records), timeout=timeout)
