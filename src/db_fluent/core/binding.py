"""Parameter binding for predicate fragments.

Fragments use ``?`` as the positional placeholder. Arguments attached to a
fragment are normalized into a flat tuple with exactly one value per
placeholder. The flattening rule is fixed:

* a single ``list`` or ``tuple`` argument is expanded into the parameter list
  (``where("a = ? AND b = ?", [1, 2])`` binds two values);
* any other argument, and every argument when more than one is given, binds
  exactly one placeholder;
* wrap a value in :class:`Param` to bind a list or tuple as one parameter
  (``where("tags = ?", Param(["a", "b"]))``).

``where_in`` additionally accepts a single set, frozenset or range.
"""

import re
from typing import Any, Iterable

from db_fluent.errors import BindingError
from db_fluent.models.query import Predicate

PLACEHOLDER = "?"

# Quoted literals are matched first so placeholders inside them are skipped.
_TOKEN_RE = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|\?|:")

_FLATTENED = (list, tuple)
_FLATTENED_IN = (list, tuple, set, frozenset, range)


class Param:
    """Marks a value that must bind to exactly one placeholder."""

    __slots__ = ("value",)

    def __init__(self, value: Any):
        self.value = value

    def __repr__(self) -> str:
        return f"Param({self.value!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Param) and other.value == self.value

    def __hash__(self) -> int:
        return hash(("Param", repr(self.value)))


def count_placeholders(fragment: str) -> int:
    """Count ``?`` placeholders outside quoted literals."""
    return sum(1 for m in _TOKEN_RE.finditer(fragment) if m.group() == PLACEHOLDER)


def number_placeholders(
    fragment: str, start: int = 0, prefix: str = "p"
) -> tuple[str, int]:
    """
    Rewrite ``?`` placeholders into numbered named binds.

    Every other colon, inside quoted literals or not, is escaped as ``\\:``
    so ``sqlalchemy.text()`` only sees the generated binds.

    Args:
        fragment: SQL text using ``?`` placeholders
        start: Index of the first bind name
        prefix: Bind name prefix

    Returns:
        Tuple of (rewritten SQL, next unused index)
    """
    index = start

    def replace(match: re.Match) -> str:
        nonlocal index
        if match.group() != PLACEHOLDER:
            return match.group().replace(":", "\\:")
        name = f":{prefix}{index}"
        index += 1
        return name

    return _TOKEN_RE.sub(replace, fragment), index


def bind_names(params: Iterable[Any], start: int = 0, prefix: str = "p") -> dict[str, Any]:
    """Map positional parameters to the names produced by number_placeholders."""
    return {f"{prefix}{i}": value for i, value in enumerate(params, start)}


def _unwrap(value: Any) -> Any:
    return value.value if isinstance(value, Param) else value


def normalize_args(args: tuple[Any, ...]) -> tuple[Any, ...]:
    """Apply the flattening rule to the arguments of ``where``/``exec``."""
    if len(args) == 1 and isinstance(args[0], _FLATTENED):
        return tuple(_unwrap(v) for v in args[0])
    return tuple(_unwrap(v) for v in args)


def bind(fragment: str, *args: Any) -> Predicate:
    """
    Bind ``args`` to the placeholders of ``fragment``.

    Raises:
        BindingError: If the parameter count differs from the placeholder count
    """
    if not fragment or not fragment.strip():
        raise BindingError("empty condition fragment")

    params = normalize_args(args)
    expected = count_placeholders(fragment)
    if len(params) != expected:
        raise BindingError(
            f"fragment {fragment!r} has {expected} placeholder(s) "
            f"but {len(params)} parameter(s) were bound"
        )
    return Predicate(fragment=fragment, params=params)


def bind_eq(column: str, value: Any) -> Predicate:
    """``column = ?``, or ``column IS NULL`` when value is None."""
    value = _unwrap(value)
    if value is None:
        return Predicate(fragment=f"{column} IS NULL")
    return Predicate(fragment=f"{column} = ?", params=(value,))


def bind_in(column: str, *values: Any) -> Predicate:
    """
    ``column IN (?, ...)`` with one placeholder per value.

    Raises:
        BindingError: If no value is supplied
    """
    if len(values) == 1 and isinstance(values[0], _FLATTENED_IN):
        items = tuple(_unwrap(v) for v in values[0])
    else:
        items = tuple(_unwrap(v) for v in values)

    if not items:
        raise BindingError(f"IN list for {column!r} must hold at least one value")

    placeholders = ", ".join(PLACEHOLDER for _ in items)
    return Predicate(fragment=f"{column} IN ({placeholders})", params=items)


def bind_between(column: str, lower: Any, upper: Any) -> Predicate:
    """``column BETWEEN ? AND ?``, inclusive on both ends."""
    return Predicate(
        fragment=f"{column} BETWEEN ? AND ?",
        params=(_unwrap(lower), _unwrap(upper)),
    )


def bind_like(column: str, pattern: Any) -> Predicate:
    """``column LIKE ?``; wildcards in ``pattern`` are passed through."""
    return Predicate(fragment=f"{column} LIKE ?", params=(_unwrap(pattern),))
