"""Unit tests for Database and Transaction sessions."""

import pytest

from db_fluent import (
    Database,
    DatabaseConnectionError,
    Transaction,
    TransactionStateError,
)
from db_fluent.core.session import TransactionStatus
from db_fluent.models import BackendCapabilities

from tests.helpers import RecordingBackend

pytestmark = pytest.mark.unit


class TestDatabase:
    """Database lifecycle."""

    @pytest.mark.asyncio
    async def test_exec_normalizes_args(self, fake_db: Database, backend: RecordingBackend):
        await fake_db.exec("UPDATE test SET data = ? WHERE id = ?", ["x", 1])
        assert backend.last("execute") == ("UPDATE test SET data = ? WHERE id = ?", ("x", 1))

    @pytest.mark.asyncio
    async def test_ping_passes_timeout(self, fake_db: Database, backend: RecordingBackend):
        await fake_db.ping(timeout=2.5)
        assert backend.last("ping") == 2.5

    def test_describes_backend(self, fake_db: Database):
        assert fake_db.dialect == "fake"
        assert fake_db.driver == "recording"
        assert fake_db.capabilities.transactions

    @pytest.mark.asyncio
    async def test_closed_database_refuses_work(
        self, fake_db: Database, backend: RecordingBackend
    ):
        await fake_db.close()
        await fake_db.close()
        assert fake_db.closed and backend.closed
        with pytest.raises(DatabaseConnectionError):
            fake_db.table("test")
        with pytest.raises(DatabaseConnectionError):
            await fake_db.ping()

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, backend: RecordingBackend):
        async with Database(backend) as db:
            await db.ping()
        assert backend.closed

    @pytest.mark.asyncio
    async def test_begin_without_transaction_support(self):
        backend = RecordingBackend(capabilities=BackendCapabilities(transactions=False))
        with pytest.raises(TransactionStateError):
            await Database(backend).begin()


class TestTransaction:
    """Transaction finalization rules."""

    @pytest.mark.asyncio
    async def test_begin_uses_dedicated_backend(
        self, fake_db: Database, backend: RecordingBackend
    ):
        tx = await fake_db.begin()
        assert isinstance(tx, Transaction)
        assert tx.active
        await tx.table("test").where_eq("id", 1).count()
        child = backend.children[0]
        assert child.last("count").table == "test"
        assert [name for name, _ in backend.calls] == ["begin"]

    @pytest.mark.asyncio
    async def test_commit_finalizes(self, fake_db: Database, backend: RecordingBackend):
        tx = await fake_db.begin()
        await tx.commit()
        assert tx.status is TransactionStatus.COMMITTED
        assert backend.children[0].last("commit") is None
        with pytest.raises(TransactionStateError):
            tx.table("test")
        with pytest.raises(TransactionStateError):
            await tx.commit()
        with pytest.raises(TransactionStateError):
            await tx.rollback()

    @pytest.mark.asyncio
    async def test_rollback_finalizes(self, fake_db: Database):
        tx = await fake_db.begin()
        await tx.rollback()
        assert tx.status is TransactionStatus.ROLLED_BACK
        with pytest.raises(TransactionStateError, match="rolled_back"):
            await tx.exec("DELETE FROM test WHERE id = ?", 1)

    @pytest.mark.asyncio
    async def test_context_manager_commits(self, fake_db: Database, backend: RecordingBackend):
        async with await fake_db.begin() as tx:
            await tx.exec("DELETE FROM test WHERE id = ?", 1)
        names = [name for name, _ in backend.children[0].calls]
        assert names == ["execute", "commit"]

    @pytest.mark.asyncio
    async def test_context_manager_rolls_back_on_error(
        self, fake_db: Database, backend: RecordingBackend
    ):
        with pytest.raises(RuntimeError):
            async with await fake_db.begin() as tx:
                raise RuntimeError("boom")
        assert not tx.active
        assert [name for name, _ in backend.children[0].calls] == ["rollback"]
