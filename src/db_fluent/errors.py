"""Error taxonomy for query construction and dispatch."""

from typing import Any, Optional


class DBFluentError(Exception):
    """Base class for every error raised by db-fluent."""

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        table: Optional[str] = None,
    ):
        self.message = message
        self.operation = operation
        self.table = table
        super().__init__(self._format())

    def _format(self) -> str:
        context = []
        if self.operation:
            context.append(f"operation={self.operation}")
        if self.table:
            context.append(f"table={self.table}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class ConfigurationError(DBFluentError):
    """Malformed connection parameters or provider setup."""


class DuplicateProviderError(ConfigurationError):
    """A provider name was registered twice."""


class ProviderNotFoundError(DBFluentError):
    """No provider is registered under the requested name."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"no such provider: {provider}")


class DatabaseConnectionError(DBFluentError):
    """Opening, pinging or using a closed connection failed."""


class BindingError(DBFluentError):
    """Bound parameters do not match the placeholders of a fragment."""


class QueryStateError(DBFluentError):
    """A query was assembled or dispatched in an invalid state."""


class NotFoundError(DBFluentError):
    """A single-row query yielded zero rows."""


class ScanError(DBFluentError):
    """A result column could not be stored into its destination."""

    def __init__(
        self,
        message: str,
        *,
        column_index: Optional[int] = None,
        column: Optional[str] = None,
        expected: Any = None,
        actual: Any = None,
    ):
        self.column_index = column_index
        self.column = column
        self.expected = expected
        self.actual = actual
        if column_index is not None:
            label = f"column {column_index}"
            if column:
                label += f" ({column})"
            message = f"{label}: {message}"
        if expected is not None or actual is not None:
            message += f" [expected {_type_name(expected)}, got {_type_name(actual)}]"
        super().__init__(message)


class TransactionStateError(DBFluentError):
    """An operation was attempted on a finalized transaction."""


class BackendError(DBFluentError):
    """Opaque failure reported by the backend adapter."""


def _type_name(value: Any) -> str:
    if value is None:
        return "None"
    if isinstance(value, type):
        return value.__name__
    return getattr(value, "__name__", None) or str(value)
