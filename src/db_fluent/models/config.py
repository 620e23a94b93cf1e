"""Database configuration model."""

import os
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy.engine import URL

from db_fluent.errors import ConfigurationError

SUPPORTED_DIALECTS = {"postgresql", "mysql", "sqlite"}


class DatabaseConfig(BaseModel):
    """Connection fields and pool settings for one database."""

    host: str = Field(default="127.0.0.1", description="Server host name")
    port: Optional[int] = Field(
        default=None,
        ge=1,
        le=65535,
        description="Server port (dialect default when unset)",
    )
    socket: Optional[str] = Field(
        default=None,
        description="Unix socket path; takes precedence over host/port",
    )
    username: Optional[str] = Field(default=None, description="Login user")
    password: Optional[str] = Field(default=None, description="Login password")
    database: str = Field(
        ...,
        description="Database name (file path for SQLite)",
    )
    tls: bool = Field(default=False, description="Require a verified TLS connection")
    pool_size: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Connection pool size",
    )
    max_overflow: int = Field(
        default=10,
        ge=0,
        le=100,
        description="Maximum overflow connections",
    )
    pool_timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Pool checkout timeout in seconds",
    )
    echo_sql: bool = Field(
        default=False,
        description="Echo SQL statements through the sqlalchemy.engine logger",
    )

    @field_validator("database")
    @classmethod
    def validate_database(cls, v: str) -> str:
        """Require a database name."""
        if not v or not v.strip():
            raise ValueError("database is required")
        return v

    @classmethod
    def from_env(cls, prefix: str = "DB_") -> "DatabaseConfig":
        """
        Build a configuration from environment variables.

        Reads ``.env`` first, then ``{prefix}HOST``, ``{prefix}PORT``,
        ``{prefix}SOCKET``, ``{prefix}USERNAME``, ``{prefix}PASSWORD``,
        ``{prefix}DATABASE``, ``{prefix}TLS`` and the pool settings.

        Raises:
            ConfigurationError: If the variables do not form a valid config
        """
        load_dotenv()

        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{prefix}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid database configuration: {e}") from e

    def dsn(self, driver: str) -> str:
        """
        Assemble a SQLAlchemy connection URL for ``driver``.

        Args:
            driver: SQLAlchemy drivername, e.g. ``mysql+aiomysql``

        Returns:
            Connection URL string (password included)

        Raises:
            ConfigurationError: If the dialect is not supported
        """
        dialect = driver.split("+")[0]
        if dialect not in SUPPORTED_DIALECTS:
            raise ConfigurationError(
                f"Unsupported database dialect: {dialect}. "
                f"Supported: {', '.join(sorted(SUPPORTED_DIALECTS))}"
            )

        if dialect == "sqlite":
            return URL.create(driver, database=self.database).render_as_string(
                hide_password=False
            )

        query: dict[str, str] = {}
        host: Optional[str] = self.host
        port = self.port

        if dialect == "mysql":
            if self.socket:
                query["unix_socket"] = self.socket
                host, port = None, None
            if self.tls:
                query["ssl"] = "true"
        else:
            if self.socket:
                # libpq style: the socket directory goes into the host query arg
                query["host"] = self.socket
                host, port = None, None
            if self.tls:
                query["sslmode"] = "verify-full"

        url = URL.create(
            driver,
            username=self.username,
            password=self.password,
            host=host,
            port=port,
            database=self.database,
            query=query,
        )
        return url.render_as_string(hide_password=False)

    def engine_options(self) -> dict[str, Any]:
        """Keyword options understood by the SQLAlchemy provider factory."""
        return {
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
            "echo_sql": self.echo_sql,
        }

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "host": "127.0.0.1",
                    "port": 3306,
                    "username": "root",
                    "password": "",
                    "database": "microsvc",
                    "tls": False,
                }
            ]
        }
    }
