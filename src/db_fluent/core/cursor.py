"""Pull-based cursors over backend result sets."""

from typing import Any, Optional, Sequence

from db_fluent.adapters.base import ResultSet
from db_fluent.core.materializer import (
    RecordSequence,
    ScalarSequence,
    ScanStrategy,
    materialize,
    scan_scalar,
    scan_values,
)
from db_fluent.core.records import build_record
from db_fluent.errors import ScanError


class Row:
    """One materialized result row."""

    def __init__(self, columns: Sequence[str], values: Sequence[Any]):
        self.columns = list(columns)
        self.values = tuple(values)

    def scan(self, *types: Any) -> tuple[Any, ...]:
        """Coerce the row positionally, one type per column."""
        return scan_values(self.columns, self.values, types)

    def scan_row(self, model: type) -> Any:
        """Build a record of ``model`` from the row."""
        return build_record(model, self.columns, self.values)

    def scalar(self, type_: Any = Any) -> Any:
        """Value of the row's single column."""
        return scan_scalar(self.columns, self.values, type_)

    def as_dict(self) -> dict[str, Any]:
        """Column -> value mapping (first occurrence of a repeated name wins)."""
        result: dict[str, Any] = {}
        for column, value in zip(self.columns, self.values):
            result.setdefault(column, value)
        return result

    def __getitem__(self, key: Any) -> Any:
        if isinstance(key, str):
            for column, value in zip(self.columns, self.values):
                if column == key:
                    return value
            raise KeyError(key)
        return self.values[key]

    def __len__(self) -> int:
        return len(self.values)

    def __repr__(self) -> str:
        return f"Row({self.as_dict()!r})"


class Cursor:
    """Open handle over a result set.

    Rows are pulled with ``next()``; scanning reads the row the last
    successful ``next()`` produced. Closing is idempotent and releases the
    backend result immediately, whether or not every row was consumed.

    Read failures are raised by ``next()`` itself. Once ``next()`` returns
    False every row was read successfully; there is no trailing error to
    check afterwards.
    """

    def __init__(self, result: ResultSet, pluck: bool = False):
        self._result = result
        self._columns = result.columns
        self._current: Optional[tuple[Any, ...]] = None
        self._closed = False
        self.pluck = pluck

    @property
    def columns(self) -> list[str]:
        return list(self._columns)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def current(self) -> tuple[Any, ...]:
        """Values of the current row."""
        if self._closed:
            raise ScanError("cursor is closed")
        if self._current is None:
            raise ScanError("no current row; call next() first")
        return self._current

    async def next(self) -> bool:
        """Advance to the next row. Returns False once the rows are exhausted."""
        if self._closed:
            return False
        self._current = await self._result.fetchone()
        return self._current is not None

    def scan(self, *types: Any) -> tuple[Any, ...]:
        """Coerce the current row positionally, one type per column."""
        return scan_values(self._columns, self.current, types)

    def scan_row(self, model: type) -> Any:
        """Build a record of ``model`` from the current row."""
        return build_record(model, self._columns, self.current)

    async def scan_all(self, target: Any = Any) -> list[Any]:
        """
        Consume the remaining rows.

        In pluck mode every row's lone column is coerced to ``target``;
        otherwise each row becomes a record of the record type ``target``.
        """
        if self.pluck:
            return await materialize(self, ScalarSequence(target))
        return await materialize(self, RecordSequence(target))

    async def materialize(self, strategy: ScanStrategy) -> Any:
        """Consume rows in the shape ``strategy`` names."""
        return await materialize(self, strategy)

    async def fetch_all(self) -> list[Row]:
        """Consume the remaining rows as Row objects."""
        rows = []
        while await self.next():
            rows.append(Row(self._columns, self._current))
        return rows

    async def close(self) -> None:
        """Release the result set. Safe to call any number of times."""
        if self._closed:
            return
        self._closed = True
        self._current = None
        await self._result.close()

    def __aiter__(self) -> "Cursor":
        return self

    async def __anext__(self) -> Row:
        if not await self.next():
            raise StopAsyncIteration
        return Row(self._columns, self._current)

    async def __aenter__(self) -> "Cursor":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
