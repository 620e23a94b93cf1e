"""Core query construction, materialization and session components."""

from .binding import Param
from .cursor import Cursor, Row
from .materializer import (
    PositionalScan,
    RecordSequence,
    ScalarSequence,
    ScanStrategy,
    SingleRecord,
    materialize,
)
from .builder import (
    AggregateStatement,
    ConditionStatement,
    StatementRunner,
    TableStatement,
)
from .session import Database, Session, Transaction, TransactionStatus
from .connection import DatabaseConnection

__all__ = [
    "AggregateStatement",
    "ConditionStatement",
    "Cursor",
    "Database",
    "DatabaseConnection",
    "Param",
    "PositionalScan",
    "RecordSequence",
    "Row",
    "ScalarSequence",
    "ScanStrategy",
    "Session",
    "SingleRecord",
    "StatementRunner",
    "TableStatement",
    "Transaction",
    "TransactionStatus",
    "materialize",
]
