"""Sessions: connection and transaction handles exposing the query builder."""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

from pydantic import ValidationError

from db_fluent.adapters.base import BaseBackend
from db_fluent.core.binding import normalize_args
from db_fluent.core.builder import TableStatement
from db_fluent.errors import (
    DatabaseConnectionError,
    QueryStateError,
    TransactionStateError,
)
from db_fluent.models.capabilities import BackendCapabilities
from db_fluent.models.query import QueryState
from db_fluent.models.result import ExecResult

logger = logging.getLogger(__name__)


class Session(ABC):
    """A live handle that can start queries and run raw SQL."""

    def __init__(self, backend: BaseBackend):
        self._backend = backend

    @property
    @abstractmethod
    def backend(self) -> BaseBackend:
        """The backend, if this session is still usable."""
        ...

    def table(self, name: str) -> TableStatement:
        """
        Start a query against ``name``.

        Each call starts from a fresh, empty query state.

        Raises:
            QueryStateError: If the table name is blank
        """
        self.backend  # raises once closed or finalized
        try:
            state = QueryState(table=name)
        except ValidationError as e:
            raise QueryStateError(f"invalid table name {name!r}") from e
        return TableStatement(self, state)

    async def exec(
        self, sql: str, *args: Any, timeout: Optional[float] = None
    ) -> ExecResult:
        """
        Execute raw SQL with ``?`` placeholders.

        Arguments follow the same rule as ``where``: a single list or tuple
        is expanded into the parameters.
        """
        return await self.backend.execute(sql, normalize_args(args), timeout=timeout)

    @property
    def capabilities(self) -> BackendCapabilities:
        return self._backend.capabilities

    @property
    def dialect(self) -> str:
        return self._backend.dialect

    @property
    def driver(self) -> str:
        return self._backend.driver


class Database(Session):
    """A connection (pool) to one database."""

    def __init__(self, backend: BaseBackend):
        super().__init__(backend)
        self._closed = False

    @property
    def backend(self) -> BaseBackend:
        if self._closed:
            raise DatabaseConnectionError("database is closed")
        return self._backend

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def provider(self) -> Any:
        """The provider's underlying handle (a SQLAlchemy AsyncEngine for the sqlalchemy provider)."""
        return self._backend.provider

    async def begin(self, timeout: Optional[float] = None) -> "Transaction":
        """
        Start a transaction on a dedicated connection.

        Writes made through the transaction stay invisible to every other
        session until ``commit()``.
        """
        backend = self.backend
        if not backend.capabilities.transactions:
            raise TransactionStateError(
                f"{backend.dialect} does not support transactions", operation="begin"
            )
        tx_backend = await backend.begin(timeout=timeout)
        logger.debug(f"transaction started on {backend.dialect}")
        return Transaction(tx_backend)

    async def ping(self, timeout: Optional[float] = None) -> None:
        """Check connectivity; raises DatabaseConnectionError on failure."""
        await self.backend.ping(timeout=timeout)

    async def close(self) -> None:
        """Dispose of the connection pool. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        await self._backend.close()

    async def __aenter__(self) -> "Database":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class TransactionStatus(str, Enum):
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class Transaction(Session):
    """A transaction bound to one backend connection.

    Once committed or rolled back, every further use raises
    TransactionStateError.
    """

    def __init__(self, backend: BaseBackend):
        super().__init__(backend)
        self.status = TransactionStatus.ACTIVE

    @property
    def active(self) -> bool:
        return self.status is TransactionStatus.ACTIVE

    @property
    def backend(self) -> BaseBackend:
        if not self.active:
            raise TransactionStateError(f"transaction already {self.status.value}")
        return self._backend

    async def commit(self, timeout: Optional[float] = None) -> None:
        backend = self.backend
        # Finalized even if the commit fails: the connection is gone either way.
        self.status = TransactionStatus.COMMITTED
        await backend.commit(timeout=timeout)

    async def rollback(self, timeout: Optional[float] = None) -> None:
        backend = self.backend
        self.status = TransactionStatus.ROLLED_BACK
        await backend.rollback(timeout=timeout)

    async def __aenter__(self) -> "Transaction":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if not self.active:
            return
        if exc_type is None:
            await self.commit()
        else:
            await self.rollback()
