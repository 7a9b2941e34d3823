"""Small SQL expression builders for conditions, ordering and result columns.

These keep callers from writing raw SQL for the common cases::

    age = Column("age")
    store.get("people", Person, where=(age >= 18) & Column("name").like("A%"),
              order_by=[age.desc()], limit=10)

Identifiers are always quoted, values always bound as parameters.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any


def quote_identifier(name: str) -> str:
    """Quote a table or column name for SQLite."""
    if not name:
        raise ValueError("Identifier must not be empty")
    return '"' + name.replace('"', '""') + '"'


@dataclass(frozen=True)
class Condition:
    """A WHERE clause fragment with its bound parameters."""

    sql: str
    params: tuple[Any, ...] = field(default_factory=tuple)

    def __and__(self, other: Condition) -> Condition:
        return Condition(f"({self.sql}) AND ({other.sql})", self.params + other.params)

    def __or__(self, other: Condition) -> Condition:
        return Condition(f"({self.sql}) OR ({other.sql})", self.params + other.params)

    def __invert__(self) -> Condition:
        return Condition(f"NOT ({self.sql})", self.params)


@dataclass(frozen=True)
class Order:
    """An ORDER BY term."""

    column: str
    descending: bool = False

    @property
    def sql(self) -> str:
        return f"{quote_identifier(self.column)} {'DESC' if self.descending else 'ASC'}"


@dataclass(frozen=True)
class ResultColumn:
    """A selectable expression such as ``count(*)`` or ``max("age")``."""

    sql: str


class Column:
    """Named column that builds conditions through comparison operators."""

    __slots__ = ("name",)

    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return f"Column({self.name!r})"

    def __hash__(self) -> int:
        return hash(("Column", self.name))

    @property
    def quoted(self) -> str:
        return quote_identifier(self.name)

    def _compare(self, op: str, value: Any) -> Condition:
        return Condition(f"{self.quoted} {op} ?", (value,))

    def __eq__(self, value: Any) -> Condition:  # type: ignore[override]
        if value is None:
            return self.is_null()
        return self._compare("=", value)

    def __ne__(self, value: Any) -> Condition:  # type: ignore[override]
        if value is None:
            return self.is_not_null()
        return self._compare("!=", value)

    def __lt__(self, value: Any) -> Condition:
        return self._compare("<", value)

    def __le__(self, value: Any) -> Condition:
        return self._compare("<=", value)

    def __gt__(self, value: Any) -> Condition:
        return self._compare(">", value)

    def __ge__(self, value: Any) -> Condition:
        return self._compare(">=", value)

    def is_null(self) -> Condition:
        return Condition(f"{self.quoted} IS NULL")

    def is_not_null(self) -> Condition:
        return Condition(f"{self.quoted} IS NOT NULL")

    def in_(self, values: Iterable[Any]) -> Condition:
        values = tuple(values)
        if not values:
            # Empty IN () is a syntax error in SQLite
            return Condition("0")
        placeholders = ", ".join("?" for _ in values)
        return Condition(f"{self.quoted} IN ({placeholders})", values)

    def like(self, pattern: str) -> Condition:
        return self._compare("LIKE", pattern)

    def between(self, low: Any, high: Any) -> Condition:
        return Condition(f"{self.quoted} BETWEEN ? AND ?", (low, high))

    def asc(self) -> Order:
        return Order(self.name)

    def desc(self) -> Order:
        return Order(self.name, descending=True)

    def count(self) -> ResultColumn:
        return ResultColumn(f"count({self.quoted})")

    def max(self) -> ResultColumn:
        return ResultColumn(f"max({self.quoted})")

    def min(self) -> ResultColumn:
        return ResultColumn(f"min({self.quoted})")

    def sum(self) -> ResultColumn:
        return ResultColumn(f"sum({self.quoted})")

    def avg(self) -> ResultColumn:
        return ResultColumn(f"avg({self.quoted})")


def count_all() -> ResultColumn:
    """``count(*)`` over the matching rows."""
    return ResultColumn("count(*)")


ColumnLike = Column | str
OrderLike = Order | Column | str


def column_name(column: ColumnLike) -> str:
    return column.name if isinstance(column, Column) else column


def result_sql(column: ColumnLike | ResultColumn) -> str:
    if isinstance(column, ResultColumn):
        return column.sql
    return quote_identifier(column_name(column))


def order_sql(order_by: Sequence[OrderLike] | OrderLike | None) -> str:
    """Render an ORDER BY clause (with leading space) or an empty string."""
    if order_by is None:
        return ""
    if isinstance(order_by, (Order, Column, str)):
        order_by = [order_by]
    terms = []
    for term in order_by:
        if isinstance(term, Order):
            terms.append(term.sql)
        else:
            terms.append(Order(column_name(term)).sql)
    if not terms:
        return ""
    return " ORDER BY " + ", ".join(terms)


def limit_sql(limit: int | None, offset: int | None) -> tuple[str, tuple[Any, ...]]:
    """Render LIMIT/OFFSET; SQLite needs a LIMIT before any OFFSET."""
    if limit is None and offset is None:
        return "", ()
    if offset is None:
        return " LIMIT ?", (limit,)
    return " LIMIT ? OFFSET ?", (-1 if limit is None else limit, offset)


def where_sql(where: Condition | None) -> tuple[str, tuple[Any, ...]]:
    if where is None:
        return "", ()
    return f" WHERE {where.sql}", where.params
