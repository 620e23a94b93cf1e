"""Shared record types and a recording fake backend for tests."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Sequence

from pydantic import BaseModel, Field

from db_fluent.adapters.base import BaseBackend, BufferedResultSet, ResultSet
from db_fluent.models.capabilities import BackendCapabilities
from db_fluent.models.query import QueryState
from db_fluent.models.result import ExecResult

TEST_TABLE_DDL = """CREATE TABLE test (
id INTEGER PRIMARY KEY AUTOINCREMENT,
data VARCHAR(80),
person_id INTEGER NULL
)"""

PERSON_TABLE_DDL = """CREATE TABLE person (
id INTEGER PRIMARY KEY AUTOINCREMENT,
name VARCHAR(80),
created_at TIMESTAMP
)"""


@dataclass
class SampleRow:
    id: int = 0
    data: str = ""
    person_id: Optional[int] = None


@dataclass
class RenamedRow:
    key: int = field(default=0, metadata={"column": "id"})
    payload: str = field(default="", metadata={"column": "data"})


class PersonRow(BaseModel):
    id: int = 0
    name: str = ""
    created_at: Optional[datetime] = None


class AliasedPerson(BaseModel):
    person_key: int = Field(0, alias="id")
    name: str = ""


class RecordingBackend(BaseBackend):
    """In-memory backend that records every dispatched call."""

    def __init__(
        self,
        columns: Sequence[str] = ("id", "data", "person_id"),
        rows: Sequence[Sequence[Any]] = (),
        capabilities: Optional[BackendCapabilities] = None,
    ):
        self.columns = list(columns)
        self.rows = [tuple(r) for r in rows]
        self._caps = capabilities or BackendCapabilities()
        self.calls: list[tuple[str, Any]] = []
        self.children: list["RecordingBackend"] = []
        self.closed = False

    @property
    def capabilities(self) -> BackendCapabilities:
        return self._caps

    @property
    def dialect(self) -> str:
        return "fake"

    @property
    def driver(self) -> str:
        return "recording"

    async def begin(self, timeout: Optional[float] = None) -> "RecordingBackend":
        self.calls.append(("begin", timeout))
        child = RecordingBackend(self.columns, self.rows, self._caps)
        self.children.append(child)
        return child

    async def commit(self, timeout: Optional[float] = None) -> None:
        self.calls.append(("commit", timeout))

    async def rollback(self, timeout: Optional[float] = None) -> None:
        self.calls.append(("rollback", timeout))

    async def execute(
        self, sql: str, params: Sequence[Any] = (), timeout: Optional[float] = None
    ) -> ExecResult:
        self.calls.append(("execute", (sql, tuple(params))))
        return ExecResult(rows_affected=1)

    async def select(self, state: QueryState, timeout: Optional[float] = None) -> ResultSet:
        self.calls.append(("select", state))
        return BufferedResultSet(self.columns, self.rows)

    async def count(self, state: QueryState, timeout: Optional[float] = None) -> int:
        self.calls.append(("count", state))
        return len(self.rows)

    async def create(
        self, table: str, records: Sequence[Any], timeout: Optional[float] = None
    ) -> None:
        self.calls.append(("create", (table, list(records))))

    async def update(
        self,
        state: QueryState,
        values: Any,
        allow_all: bool = False,
        timeout: Optional[float] = None,
    ) -> int:
        self.calls.append(("update", (state, values, allow_all)))
        return 1

    async def delete(
        self,
        state: QueryState,
        record: Any = None,
        allow_all: bool = False,
        timeout: Optional[float] = None,
    ) -> int:
        self.calls.append(("delete", (state, record, allow_all)))
        return 1

    async def ping(self, timeout: Optional[float] = None) -> None:
        self.calls.append(("ping", timeout))

    async def close(self) -> None:
        self.closed = True

    def last(self, operation: str) -> Any:
        """Payload of the most recent call to ``operation``."""
        for name, payload in reversed(self.calls):
            if name == operation:
                return payload
        raise AssertionError(f"{operation} was never called")
