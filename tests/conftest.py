"""Pytest configuration and shared fixtures for db-fluent tests"""

import os
from datetime import datetime
from pathlib import Path
from typing import AsyncGenerator, Optional

import pytest
from dotenv import load_dotenv

from db_fluent import Database, ProviderRegistry
from db_fluent.adapters.sqlalchemy_backend import register_builtin_providers

from tests.helpers import (
    PERSON_TABLE_DDL,
    TEST_TABLE_DDL,
    PersonRow,
    RecordingBackend,
    SampleRow,
)

# Load environment variables
load_dotenv()


# ==================== Configuration Fixtures ====================


@pytest.fixture(scope="session")
def sqlite_driver() -> str:
    """Async SQLite driver used by module and integration tests"""
    return os.getenv("DB_FLUENT_TEST_DRIVER", "sqlite+aiosqlite")


@pytest.fixture
def sqlite_path(tmp_path: Path) -> str:
    """Database file unique to one test"""
    return str(tmp_path / "fluent.db")


@pytest.fixture
def registry() -> ProviderRegistry:
    """Fresh provider registry with the built-in providers installed"""
    registry = ProviderRegistry()
    register_builtin_providers(registry)
    return registry


# ==================== Fake Backend Fixtures ====================


@pytest.fixture
def backend() -> RecordingBackend:
    """Recording backend with no rows"""
    return RecordingBackend()


@pytest.fixture
def fake_db(backend: RecordingBackend) -> Database:
    """Database over the recording backend"""
    return Database(backend)


# ==================== SQLite Fixtures ====================


@pytest.fixture
async def database(
    registry: ProviderRegistry, sqlite_driver: str, sqlite_path: str
) -> AsyncGenerator[Database, None]:
    """SQLite database with empty ``test`` and ``person`` tables"""
    db = await registry.open("sqlalchemy", sqlite_driver, sqlite_path)
    try:
        await db.exec(TEST_TABLE_DDL)
        await db.exec(PERSON_TABLE_DDL)
        yield db
    finally:
        await db.close()


@pytest.fixture
async def seeded_database(database: Database) -> Database:
    """
    Database holding the reference data set.

    ``test`` rows 1-4 carry sentences; rows 100-103 reference ``person``
    rows 1 and 2 (row 102 references no person).
    """
    await database.table("test").create(SampleRow(data="The quick brown fox"))
    await database.table("test").create(
        [
            SampleRow(data="jumps over"),
            SampleRow(data="the lazy"),
            SampleRow(data="dog"),
        ]
    )
    await database.table("person").create(
        PersonRow(name="Tim", created_at=datetime(2017, 6, 10, 16, 40, 50)),
        PersonRow(name="Tom", created_at=datetime(2017, 6, 11, 9, 30, 0)),
    )
    await database.table("test").create(
        [
            {"id": 100, "data": "acidlemon-test", "person_id": 1},
            {"id": 101, "data": "acidlemon-test2", "person_id": 2},
            {"id": 102, "data": "orphan", "person_id": 0},
            {"id": 103, "data": "tim-again", "person_id": 1},
        ]
    )
    return database


@pytest.fixture
async def column_values(seeded_database: Database):
    """Helper returning the ``data`` column of one row by id"""

    async def lookup(row_id: int) -> Optional[str]:
        cursor = await seeded_database.table("test").where_eq("id", row_id).fetch_column("data")
        async with cursor:
            values = await cursor.scan_all(str)
        return values[0] if values else None

    return lookup


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: Pure tests over the recording backend")
    config.addinivalue_line("markers", "module: Component tests against SQLite")
    config.addinivalue_line(
        "markers", "integration: End-to-end tests through the provider registry"
    )
    config.addinivalue_line("markers", "sqlite: Tests requiring aiosqlite")
