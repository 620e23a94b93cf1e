"""Accumulated query state models."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class JoinKind(str, Enum):
    """Kinds of join clause."""

    INNER = "INNER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"

    @property
    def keyword(self) -> str:
        return f"{self.value} JOIN"


class JoinSpec(BaseModel):
    """One join clause against another table."""

    model_config = ConfigDict(frozen=True)

    kind: JoinKind = Field(..., description="Join kind")
    table: str = Field(..., description="Joined table name")
    condition: str = Field(..., description="Raw ON condition")

    def render(self) -> str:
        return f"{self.kind.keyword} {self.table} ON {self.condition}"


class Predicate(BaseModel):
    """A SQL fragment with ``?`` placeholders and its bound parameters."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    fragment: str = Field(..., description="SQL fragment using ? placeholders")
    params: tuple[Any, ...] = Field(
        default=(), description="Positional parameters, one per placeholder"
    )


class QueryState(BaseModel):
    """Clauses accumulated for one query against one table.

    Instances are immutable; the builder derives a new state for every
    clause it adds.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    table: str = Field(..., description="Target table name")
    joins: tuple[JoinSpec, ...] = Field(default=(), description="Join clauses in order")
    columns: tuple[str, ...] = Field(
        default=(), description="Projection; empty selects every column"
    )
    predicates: tuple[Predicate, ...] = Field(
        default=(), description="WHERE predicates, combined with AND"
    )
    group_by: tuple[str, ...] = Field(default=(), description="GROUP BY columns")
    order_by: tuple[str, ...] = Field(default=(), description="ORDER BY columns")
    having: Optional[Predicate] = Field(None, description="HAVING predicate")
    limit: Optional[int] = Field(None, ge=0, description="Row limit")
    offset: Optional[int] = Field(None, ge=0, description="Row offset")

    @field_validator("table")
    @classmethod
    def validate_table(cls, v: str) -> str:
        """Reject blank table names."""
        if not v or not v.strip():
            raise ValueError("table name is required")
        return v.strip()

    @property
    def projection(self) -> str:
        """SELECT list text."""
        return ", ".join(self.columns) if self.columns else "*"

    @property
    def params(self) -> tuple[Any, ...]:
        """All bound parameters in placeholder order (WHERE then HAVING)."""
        values: list[Any] = []
        for predicate in self.predicates:
            values.extend(predicate.params)
        if self.having is not None:
            values.extend(self.having.params)
        return tuple(values)

    def derive(self, **changes: Any) -> "QueryState":
        """Return a copy of this state with ``changes`` applied."""
        return self.model_copy(update=changes)
