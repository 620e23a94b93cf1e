"""Result materialization strategies.

The destination shape is chosen explicitly by the caller through one of four
strategies instead of being inferred from the destination at run time:

* ``SingleRecord(Model)``: the first row as a record, NotFoundError if none
* ``RecordSequence(Model)``: every remaining row as a record
* ``ScalarSequence(type)``: the lone column of every remaining row
* ``PositionalScan(*types)``: the next row as a tuple, one type per column
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Sequence, Union

from db_fluent.core.records import build_record, coerce_value
from db_fluent.errors import NotFoundError, ScanError

if TYPE_CHECKING:
    from db_fluent.core.cursor import Cursor


@dataclass(frozen=True)
class SingleRecord:
    model: type


@dataclass(frozen=True)
class RecordSequence:
    model: type


@dataclass(frozen=True)
class ScalarSequence:
    type_: Any = Any


@dataclass(frozen=True, init=False)
class PositionalScan:
    types: tuple[Any, ...]

    def __init__(self, *types: Any):
        object.__setattr__(self, "types", tuple(types))


ScanStrategy = Union[SingleRecord, RecordSequence, ScalarSequence, PositionalScan]


def scan_values(
    columns: Sequence[str], values: Sequence[Any], types: Sequence[Any]
) -> tuple[Any, ...]:
    """
    Coerce a row positionally.

    Raises:
        ScanError: If the column count differs from ``types`` or a value does not fit
    """
    if len(types) != len(values):
        raise ScanError(
            f"expected {len(types)} destination(s) but the row has {len(values)} column(s)"
        )
    return tuple(
        coerce_value(value, type_, index, columns[index] if index < len(columns) else None)
        for index, (value, type_) in enumerate(zip(values, types))
    )


def scan_scalar(columns: Sequence[str], values: Sequence[Any], type_: Any) -> Any:
    """Coerce the lone column of a row."""
    if len(values) != 1:
        raise ScanError(
            f"scalar scan needs exactly one column, the row has {len(values)}",
            expected=type_,
        )
    return coerce_value(values[0], type_, 0, columns[0] if columns else None)


async def materialize(cursor: "Cursor", strategy: ScanStrategy) -> Any:
    """
    Consume rows from ``cursor`` into the shape ``strategy`` names.

    Args:
        cursor: Open cursor positioned before the rows to consume
        strategy: One of the four scan strategies

    Returns:
        A record, a list of records, a list of scalars, or a tuple

    Raises:
        NotFoundError: If a single-row strategy finds no row
        ScanError: If a row does not fit the destination
    """
    columns = cursor.columns

    if isinstance(strategy, SingleRecord):
        if not await cursor.next():
            raise NotFoundError("query returned no rows")
        return build_record(strategy.model, columns, cursor.current)

    if isinstance(strategy, PositionalScan):
        if not await cursor.next():
            raise NotFoundError("query returned no rows")
        return scan_values(columns, cursor.current, strategy.types)

    if isinstance(strategy, RecordSequence):
        records = []
        while await cursor.next():
            records.append(build_record(strategy.model, columns, cursor.current))
        return records

    if isinstance(strategy, ScalarSequence):
        if len(columns) != 1:
            raise ScanError(
                f"scalar sequence needs exactly one column, the cursor has {len(columns)}"
            )
        scalars = []
        while await cursor.next():
            scalars.append(scan_scalar(columns, cursor.current, strategy.type_))
        return scalars

    raise TypeError(f"unknown scan strategy: {strategy!r}")
