"""Pydantic models for configuration, query state and results."""

from .capabilities import BackendCapabilities
from .config import DatabaseConfig
from .query import JoinKind, JoinSpec, Predicate, QueryState
from .result import ExecResult

__all__ = [
    "BackendCapabilities",
    "DatabaseConfig",
    "ExecResult",
    "JoinKind",
    "JoinSpec",
    "Predicate",
    "QueryState",
]
