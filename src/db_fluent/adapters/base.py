"""Backend capability interface implemented by every provider."""

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from db_fluent.models.capabilities import BackendCapabilities
from db_fluent.models.query import QueryState
from db_fluent.models.result import ExecResult


class ResultSet(ABC):
    """Backend rows for one executed query, consumed one row at a time."""

    @property
    @abstractmethod
    def columns(self) -> list[str]:
        """Result column names in order."""
        ...

    @abstractmethod
    async def fetchone(self) -> Optional[tuple[Any, ...]]:
        """Return the next row, or None once the rows are exhausted."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources. Must be safe to call repeatedly."""
        ...


class BufferedResultSet(ResultSet):
    """Result set over rows already fetched into memory."""

    def __init__(self, columns: Sequence[str], rows: Sequence[Sequence[Any]]):
        self._columns = list(columns)
        self._rows = [tuple(row) for row in rows]
        self._position = 0
        self._closed = False

    @property
    def columns(self) -> list[str]:
        return list(self._columns)

    async def fetchone(self) -> Optional[tuple[Any, ...]]:
        if self._closed or self._position >= len(self._rows):
            return None
        row = self._rows[self._position]
        self._position += 1
        return row

    async def close(self) -> None:
        self._closed = True
        self._rows = []


class BaseBackend(ABC):
    """Operations the query builder and sessions dispatch to a backend.

    Every coroutine accepts ``timeout`` (seconds). The core passes it through
    untouched; honoring it is the backend's job.
    """

    @property
    @abstractmethod
    def capabilities(self) -> BackendCapabilities:
        """Get capabilities for this backend."""
        ...

    @property
    @abstractmethod
    def dialect(self) -> str:
        """Backend dialect name."""
        ...

    @property
    @abstractmethod
    def driver(self) -> str:
        """Backend driver name."""
        ...

    @property
    def provider(self) -> Any:
        """Underlying provider object (engine, client, ...)."""
        return None

    @abstractmethod
    async def begin(self, timeout: Optional[float] = None) -> "BaseBackend":
        """
        Start a transaction.

        Returns:
            A backend bound to the new transaction
        """
        ...

    @abstractmethod
    async def commit(self, timeout: Optional[float] = None) -> None:
        """Commit the transaction this backend is bound to."""
        ...

    @abstractmethod
    async def rollback(self, timeout: Optional[float] = None) -> None:
        """Discard the transaction this backend is bound to."""
        ...

    @abstractmethod
    async def execute(
        self,
        sql: str,
        params: Sequence[Any] = (),
        timeout: Optional[float] = None,
    ) -> ExecResult:
        """
        Execute raw SQL.

        Args:
            sql: SQL text using ? placeholders
            params: Flat positional parameters
            timeout: Deadline in seconds
        """
        ...

    @abstractmethod
    async def select(
        self, state: QueryState, timeout: Optional[float] = None
    ) -> ResultSet:
        """Run a SELECT for ``state``."""
        ...

    @abstractmethod
    async def count(self, state: QueryState, timeout: Optional[float] = None) -> int:
        """Count the rows ``state`` selects."""
        ...

    @abstractmethod
    async def create(
        self,
        table: str,
        records: Sequence[Any],
        timeout: Optional[float] = None,
    ) -> None:
        """
        Insert ``records`` into ``table`` atomically.

        Generated primary keys are written back into records whose key was blank.
        """
        ...

    @abstractmethod
    async def update(
        self,
        state: QueryState,
        values: Any,
        allow_all: bool = False,
        timeout: Optional[float] = None,
    ) -> int:
        """
        Update rows selected by ``state``.

        Args:
            state: Query whose predicates scope the update
            values: Column mapping or record
            allow_all: Permit an update without any predicate

        Returns:
            Number of affected rows
        """
        ...

    @abstractmethod
    async def delete(
        self,
        state: QueryState,
        record: Any = None,
        allow_all: bool = False,
        timeout: Optional[float] = None,
    ) -> int:
        """Delete rows selected by ``state`` (and ``record``'s key). Returns the count."""
        ...

    @abstractmethod
    async def ping(self, timeout: Optional[float] = None) -> None:
        """Check connectivity."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release every backend resource."""
        ...
