"""Backend adapters and dialect capability profiles."""

from typing import Any, Optional

from .base import BaseBackend, BufferedResultSet, ResultSet
from ..errors import ConfigurationError
from ..models.capabilities import BackendCapabilities

__all__ = [
    "BaseBackend",
    "BufferedResultSet",
    "ResultSet",
    "capabilities_for",
]


def capabilities_for(
    dialect: str, server_version: Optional[tuple[Any, ...]] = None
) -> BackendCapabilities:
    """
    Capabilities of a SQL dialect.

    Args:
        dialect: Dialect name
        server_version: Server version tuple, when known

    Raises:
        ConfigurationError: If the dialect is not supported
    """
    if dialect == "sqlite":
        version = tuple(server_version or ())
        return BackendCapabilities(
            transactions=True,
            right_join=version >= (3, 39),  # RIGHT/FULL JOIN arrived in 3.39
        )
    if dialect in ("postgresql", "mysql"):
        return BackendCapabilities(transactions=True, right_join=True)

    raise ConfigurationError(
        f"Unsupported database dialect: {dialect}. "
        "Supported dialects: postgresql, mysql, sqlite"
    )
