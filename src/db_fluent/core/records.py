"""Record introspection: mapping between result columns and record fields.

A record is a dataclass or a pydantic model. Each field maps to the column
of the same name, compared case-insensitively. A dataclass field can name
another column with ``field(metadata={"column": "..."})``; a pydantic field
does the same with ``alias``.
"""

import dataclasses
import typing
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Mapping, Optional, Sequence

from pydantic import BaseModel, TypeAdapter, ValidationError

from db_fluent.errors import ScanError


@dataclass(frozen=True)
class RecordField:
    """One mapped field of a record type."""

    attribute: str
    column: str
    annotation: Any
    init: bool = True


def is_record_type(model: Any) -> bool:
    """Whether ``model`` is a class usable as a record type."""
    return isinstance(model, type) and (
        dataclasses.is_dataclass(model) or issubclass(model, BaseModel)
    )


def is_record(value: Any) -> bool:
    """Whether ``value`` is a record instance."""
    return not isinstance(value, type) and is_record_type(type(value))


@lru_cache(maxsize=None)
def record_fields(model: type) -> tuple[RecordField, ...]:
    """
    Describe the mapped fields of a record type.

    Raises:
        TypeError: If ``model`` is neither a dataclass nor a pydantic model
    """
    if isinstance(model, type) and issubclass(model, BaseModel):
        return tuple(
            RecordField(
                attribute=name,
                column=info.alias or name,
                annotation=info.annotation,
            )
            for name, info in model.model_fields.items()
        )

    if dataclasses.is_dataclass(model):
        hints = typing.get_type_hints(model)
        return tuple(
            RecordField(
                attribute=f.name,
                column=f.metadata.get("column", f.name),
                annotation=hints.get(f.name, Any),
                init=f.init,
            )
            for f in dataclasses.fields(model)
        )

    raise TypeError(
        f"record type must be a dataclass or a pydantic model, not {model!r}"
    )


def _column_map(model: type) -> dict[str, RecordField]:
    return {f.column.lower(): f for f in record_fields(model)}


@lru_cache(maxsize=256)
def _adapter(annotation: Any) -> TypeAdapter:
    return TypeAdapter(annotation)


def coerce_value(
    value: Any, annotation: Any, index: int, column: Optional[str] = None
) -> Any:
    """
    Coerce one column value to ``annotation``.

    Raises:
        ScanError: If the value cannot be represented as ``annotation``
    """
    if annotation is Any or annotation is object:
        return value
    try:
        return _adapter(annotation).validate_python(value)
    except ValidationError as e:
        raise ScanError(
            e.errors()[0]["msg"] if e.errors() else str(e),
            column_index=index,
            column=column,
            expected=annotation,
            actual=type(value),
        ) from e


def build_record(model: type, columns: Sequence[str], values: Sequence[Any]) -> Any:
    """
    Build one record of ``model`` from a result row.

    Columns without a matching field are ignored; when a column name repeats
    the first occurrence wins. Fields without a column keep their defaults.

    Raises:
        ScanError: If a value does not fit its field or the record cannot be built
    """
    try:
        mapping = _column_map(model)
    except TypeError as e:
        raise ScanError(str(e)) from e

    matched: dict[str, tuple[int, RecordField, Any]] = {}
    for index, (column, value) in enumerate(zip(columns, values)):
        field = mapping.get(column.lower())
        if field is None or field.attribute in matched:
            continue
        matched[field.attribute] = (index, field, value)

    if issubclass(model, BaseModel):
        return _build_model(model, matched)

    kwargs: dict[str, Any] = {}
    late: dict[str, Any] = {}
    for index, field, value in matched.values():
        coerced = coerce_value(value, field.annotation, index, field.column)
        if field.init:
            kwargs[field.attribute] = coerced
        else:
            late[field.attribute] = coerced

    try:
        record = model(**kwargs)
    except TypeError as e:
        raise ScanError(f"cannot build {model.__name__}: {e}") from e

    for attribute, value in late.items():
        object.__setattr__(record, attribute, value)
    return record


def _build_model(model: type, matched: dict[str, tuple[int, RecordField, Any]]) -> Any:
    data = {field.column: value for _, field, value in matched.values()}
    try:
        return model.model_validate(data)
    except ValidationError as e:
        index, column = None, None
        errors = e.errors()
        if errors and errors[0].get("loc"):
            key = errors[0]["loc"][0]
            for i, field, _ in matched.values():
                if key in (field.column, field.attribute):
                    index, column = i, field.column
                    break
        raise ScanError(
            f"cannot build {model.__name__}: {errors[0]['msg'] if errors else e}",
            column_index=index,
            column=column,
        ) from e


def record_values(record: Any) -> dict[str, Any]:
    """Column -> value mapping of a record instance (or a plain mapping)."""
    if isinstance(record, Mapping):
        return dict(record)
    if not is_record(record):
        raise TypeError(
            f"cannot read column values from {type(record).__name__}; "
            "use a dataclass, a pydantic model or a mapping"
        )
    return {f.column: getattr(record, f.attribute) for f in record_fields(type(record))}


def set_record_value(record: Any, column: str, value: Any) -> None:
    """Store ``value`` into the field mapped to ``column``, if any."""
    if not is_record(record):
        return
    field = _column_map(type(record)).get(column.lower())
    if field is None:
        return
    if isinstance(record, BaseModel):
        setattr(record, field.attribute, value)
    else:
        object.__setattr__(record, field.attribute, value)


def is_blank(value: Any) -> bool:
    """Whether a primary-key value counts as unset."""
    return value is None or (isinstance(value, int) and not isinstance(value, bool) and value == 0)
