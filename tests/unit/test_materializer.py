"""Unit tests for cursors, rows and scan strategies."""

from typing import Optional

import pytest

from db_fluent import (
    BackendError,
    Cursor,
    NotFoundError,
    PositionalScan,
    RecordSequence,
    Row,
    ScalarSequence,
    ScanError,
    SingleRecord,
    materialize,
)
from db_fluent.adapters.base import BufferedResultSet

from tests.helpers import SampleRow

pytestmark = pytest.mark.unit

COLUMNS = ["id", "data", "person_id"]
ROWS = [(1, "a", None), (2, "b", 1), (3, "c", 2)]


class BrokenAfterFirstRow(BufferedResultSet):
    """Result set whose backend fails after the first row."""

    async def fetchone(self):
        if self._position >= 1:
            raise BackendError("connection lost", operation="select", table="test")
        return await super().fetchone()


def make_cursor(rows=ROWS, columns=COLUMNS, pluck=False) -> Cursor:
    return Cursor(BufferedResultSet(columns, rows), pluck=pluck)


class TestStrategies:
    """The four materialization strategies."""

    @pytest.mark.asyncio
    async def test_single_record(self):
        record = await materialize(make_cursor(), SingleRecord(SampleRow))
        assert record == SampleRow(id=1, data="a", person_id=None)

    @pytest.mark.asyncio
    async def test_single_record_without_rows(self):
        with pytest.raises(NotFoundError):
            await materialize(make_cursor(rows=[]), SingleRecord(SampleRow))

    @pytest.mark.asyncio
    async def test_record_sequence(self):
        records = await materialize(make_cursor(), RecordSequence(SampleRow))
        assert [r.id for r in records] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_record_sequence_empty(self):
        assert await materialize(make_cursor(rows=[]), RecordSequence(SampleRow)) == []

    @pytest.mark.asyncio
    async def test_scalar_sequence(self):
        cursor = make_cursor(rows=[("1",), ("2",)], columns=["id"])
        assert await materialize(cursor, ScalarSequence(int)) == [1, 2]

    @pytest.mark.asyncio
    async def test_scalar_sequence_needs_one_column(self):
        with pytest.raises(ScanError):
            await materialize(make_cursor(), ScalarSequence(int))

    @pytest.mark.asyncio
    async def test_positional_scan(self):
        values = await materialize(make_cursor(), PositionalScan(int, str, Optional[int]))
        assert values == (1, "a", None)

    @pytest.mark.asyncio
    async def test_positional_scan_arity(self):
        with pytest.raises(ScanError, match="expected 2 destination"):
            await materialize(make_cursor(), PositionalScan(int, str))

    @pytest.mark.asyncio
    async def test_unknown_strategy(self):
        with pytest.raises(TypeError):
            await materialize(make_cursor(), "records")

    @pytest.mark.asyncio
    async def test_scan_error_mid_sequence(self):
        cursor = make_cursor(rows=[(1, "a", None), ("x", "b", None)])
        with pytest.raises(ScanError) as excinfo:
            await cursor.scan_all(SampleRow)
        assert excinfo.value.column_index == 0


class TestCursor:
    """Cursor iteration and lifecycle."""

    @pytest.mark.asyncio
    async def test_next_and_scan(self):
        cursor = make_cursor()
        seen = []
        while await cursor.next():
            seen.append(cursor.scan(int, str, Optional[int])[0])
        assert seen == [1, 2, 3]
        assert cursor.columns == COLUMNS

    @pytest.mark.asyncio
    async def test_scan_before_next(self):
        cursor = make_cursor()
        with pytest.raises(ScanError):
            cursor.scan(int, str, int)

    @pytest.mark.asyncio
    async def test_scan_row(self):
        cursor = make_cursor()
        assert await cursor.next()
        assert cursor.scan_row(SampleRow).data == "a"

    @pytest.mark.asyncio
    async def test_exhaustion_is_final(self):
        cursor = make_cursor()
        iterations = 0
        while await cursor.next():
            cursor.scan(int, str, Optional[int])
            iterations += 1
        assert iterations == 3
        assert not await cursor.next()
        await cursor.close()

    @pytest.mark.asyncio
    async def test_read_failure_raises_from_next(self):
        cursor = Cursor(BrokenAfterFirstRow(COLUMNS, ROWS))
        assert await cursor.next()
        with pytest.raises(BackendError, match="connection lost"):
            await cursor.next()
        await cursor.close()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        cursor = make_cursor()
        await cursor.next()
        await cursor.close()
        await cursor.close()
        assert cursor.closed
        assert not await cursor.next()
        with pytest.raises(ScanError):
            cursor.scan_row(SampleRow)

    @pytest.mark.asyncio
    async def test_async_iteration(self):
        async with make_cursor() as cursor:
            ids = [row["id"] async for row in cursor]
        assert ids == [1, 2, 3]
        assert cursor.closed

    @pytest.mark.asyncio
    async def test_scan_all_records(self):
        records = await make_cursor().scan_all(SampleRow)
        assert [r.data for r in records] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_scan_all_pluck(self):
        cursor = make_cursor(rows=[("a",), ("b",)], columns=["data"], pluck=True)
        assert await cursor.scan_all(str) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_fetch_all_after_partial_read(self):
        cursor = make_cursor()
        await cursor.next()
        rows = await cursor.fetch_all()
        assert [r["id"] for r in rows] == [2, 3]


class TestRow:
    """Row helpers."""

    def test_lookup(self):
        row = Row(["id", "data", "id"], [1, "a", 9])
        assert row[0] == 1
        assert row["id"] == 1
        assert row.as_dict() == {"id": 1, "data": "a"}
        assert len(row) == 3
        with pytest.raises(KeyError):
            row["missing"]

    def test_scalar(self):
        assert Row(["count"], ["4"]).scalar(int) == 4
        with pytest.raises(ScanError):
            Row(["a", "b"], [1, 2]).scalar()

    def test_scan_type_mismatch(self):
        with pytest.raises(ScanError) as excinfo:
            Row(["id", "data"], [1, "x"]).scan(int, int)
        assert excinfo.value.column == "data"
        assert excinfo.value.column_index == 1
