"""db-fluent: a fluent, backend-agnostic query builder.

Open a database through a registered provider, start a query with
``table()`` and chain clauses down to a terminal call::

    db = await db_fluent.open("sqlalchemy", "sqlite+aiosqlite", "app.db")
    cursor = await db.table("note").where_in("id", [1, 2]).order_by("id").all()
    notes = await cursor.scan_all(Note)
"""

from db_fluent.errors import (
    BackendError,
    BindingError,
    ConfigurationError,
    DatabaseConnectionError,
    DBFluentError,
    DuplicateProviderError,
    NotFoundError,
    ProviderNotFoundError,
    QueryStateError,
    ScanError,
    TransactionStateError,
)
from db_fluent.models import DatabaseConfig, ExecResult, QueryState
from db_fluent.core import (
    AggregateStatement,
    ConditionStatement,
    Cursor,
    Database,
    Param,
    PositionalScan,
    RecordSequence,
    Row,
    ScalarSequence,
    Session,
    SingleRecord,
    StatementRunner,
    TableStatement,
    Transaction,
    materialize,
)
from db_fluent.registry import ProviderRegistry, default_registry, open, register_provider
from db_fluent.adapters.sqlalchemy_backend import (
    SQLAlchemyBackend,
    open_sqlalchemy,
    register_builtin_providers,
)

__version__ = "0.1.0"

__all__ = [
    "AggregateStatement",
    "BackendError",
    "BindingError",
    "ConditionStatement",
    "ConfigurationError",
    "Cursor",
    "Database",
    "DatabaseConfig",
    "DatabaseConnectionError",
    "DBFluentError",
    "DuplicateProviderError",
    "ExecResult",
    "NotFoundError",
    "Param",
    "PositionalScan",
    "ProviderNotFoundError",
    "ProviderRegistry",
    "QueryState",
    "QueryStateError",
    "RecordSequence",
    "Row",
    "SQLAlchemyBackend",
    "ScalarSequence",
    "ScanError",
    "Session",
    "SingleRecord",
    "StatementRunner",
    "TableStatement",
    "Transaction",
    "TransactionStateError",
    "default_registry",
    "materialize",
    "open",
    "open_sqlalchemy",
    "register_builtin_providers",
    "register_provider",
]
