"""Table schemas derived from pydantic record models.

Each record class maps to exactly one table. The mapping is computed once,
either explicitly through the ``@table`` decorator or lazily on first use,
and attached to the class::

    @table(primary_key="identifier")
    class Sample(BaseModel):
        identifier: int
        description: str | None = None

The table name defaults to the class name.
"""

from __future__ import annotations

import json
import types
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Literal, TypeVar, Union, get_args, get_origin
from uuid import UUID

from pydantic import BaseModel, TypeAdapter, ValidationError

from keepsake.core.errors import SchemaError
from keepsake.storage.expressions import quote_identifier

SCHEMA_ATTRIBUTE = "__table_schema__"

ModelT = TypeVar("ModelT", bound=BaseModel)

INTEGER = "INTEGER"
REAL = "REAL"
TEXT = "TEXT"
BLOB = "BLOB"


@dataclass(frozen=True)
class ColumnSpec:
    """One column of a table schema."""

    name: str
    affinity: str
    nullable: bool
    is_json: bool = False
    default: str | None = None

    def definition(self, primary_key: bool = False, autoincrement: bool = False) -> str:
        parts = [quote_identifier(self.name), self.affinity]
        if primary_key:
            parts.append("PRIMARY KEY")
            if autoincrement:
                parts.append("AUTOINCREMENT")
        elif not self.nullable:
            parts.append("NOT NULL")
        if self.default is not None:
            parts.append(f"DEFAULT {self.default}")
        return " ".join(parts)


def _default_literal(value: Any) -> str | None:
    """SQL literal for a scalar field default, None when there is none."""
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    return None


def _unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = get_args(annotation)
        remaining = [arg for arg in args if arg is not type(None)]
        nullable = len(remaining) != len(args)
        if len(remaining) == 1:
            return remaining[0], nullable
        return annotation, nullable
    return annotation, False


def _affinity(annotation: Any) -> tuple[str, bool]:
    """Return ``(affinity, is_json)`` for a field annotation."""
    if get_origin(annotation) is Literal:
        values = get_args(annotation)
        if all(isinstance(value, str) for value in values):
            return TEXT, False
        if all(isinstance(value, int) and not isinstance(value, bool) for value in values):
            return INTEGER, False
        return TEXT, True

    if not isinstance(annotation, type):
        return TEXT, True

    if issubclass(annotation, bool):
        return INTEGER, False
    if issubclass(annotation, Enum):
        if issubclass(annotation, int):
            return INTEGER, False
        if issubclass(annotation, str):
            return TEXT, False
        return TEXT, True
    if issubclass(annotation, int):
        return INTEGER, False
    if issubclass(annotation, float):
        return REAL, False
    if issubclass(annotation, (str, datetime, date, time, UUID, Decimal)):
        return TEXT, False
    if issubclass(annotation, (bytes, bytearray)):
        return BLOB, False
    return TEXT, True


def _as_tuple(names: str | Iterable[str]) -> tuple[str, ...]:
    if isinstance(names, str):
        return (names,)
    return tuple(names)


@dataclass(frozen=True)
class TableSchema:
    """Explicit association of a record class with its table."""

    model: type[BaseModel]
    name: str
    columns: tuple[ColumnSpec, ...]
    primary_key: tuple[str, ...] = ()
    unique: tuple[tuple[str, ...], ...] = ()
    autoincrement: bool = False
    _adapters: dict[str, TypeAdapter] = field(
        default_factory=dict, compare=False, repr=False
    )

    @classmethod
    def from_model(
        cls,
        model: type[BaseModel],
        name: str | None = None,
        primary_key: str | Iterable[str] = (),
        unique: Iterable[str | Iterable[str]] = (),
        autoincrement: bool = False,
    ) -> TableSchema:
        """Derive a schema from a pydantic model class."""
        if not isinstance(model, type) or not issubclass(model, BaseModel):
            raise SchemaError(f"{model!r} is not a pydantic model class")

        columns = []
        for field_name, info in model.model_fields.items():
            annotation, nullable = _unwrap_optional(info.annotation)
            affinity, is_json = _affinity(annotation)
            required = info.is_required()
            columns.append(
                ColumnSpec(
                    name=field_name,
                    affinity=affinity,
                    # Columns left out of a partial insert must accept NULL
                    nullable=nullable or not required,
                    is_json=is_json,
                    default=None if required or is_json else _default_literal(info.default),
                )
            )
        if not columns:
            raise SchemaError(f"{model.__name__} declares no fields")

        schema = cls(
            model=model,
            name=name or model.__name__,
            columns=tuple(columns),
            primary_key=_as_tuple(primary_key),
            unique=tuple(_as_tuple(group) for group in unique),
            autoincrement=autoincrement,
        )
        for column in schema.primary_key + tuple(c for g in schema.unique for c in g):
            schema.column(column)
        if autoincrement and (
            len(schema.primary_key) != 1
            or schema.column(schema.primary_key[0]).affinity != INTEGER
        ):
            raise SchemaError("autoincrement needs a single INTEGER primary key")
        return schema

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    def column(self, name: str) -> ColumnSpec:
        for column in self.columns:
            if column.name == name:
                return column
        raise SchemaError(f"Table {self.name!r} has no column {name!r}")

    def resolve_columns(self, columns: Sequence[str] | None) -> tuple[str, ...]:
        """Validate a column subset, defaulting to every column."""
        if not columns:
            return self.column_names
        for name in columns:
            self.column(name)
        return tuple(columns)

    def create_sql(self) -> str:
        inline_key = len(self.primary_key) == 1 and self.autoincrement
        definitions = [
            column.definition(
                primary_key=inline_key and column.name == self.primary_key[0],
                autoincrement=self.autoincrement,
            )
            for column in self.columns
        ]
        if self.primary_key and not inline_key:
            keys = ", ".join(quote_identifier(name) for name in self.primary_key)
            definitions.append(f"PRIMARY KEY ({keys})")
        for group in self.unique:
            keys = ", ".join(quote_identifier(name) for name in group)
            definitions.append(f"UNIQUE ({keys})")
        return (
            f"CREATE TABLE IF NOT EXISTS {quote_identifier(self.name)} "
            f"({', '.join(definitions)})"
        )

    def encode(self, record: BaseModel, columns: Sequence[str]) -> tuple[Any, ...]:
        """Convert a record into column values in ``columns`` order."""
        if not isinstance(record, self.model):
            raise SchemaError(
                f"Expected {self.model.__name__} record, got {type(record).__name__}"
            )
        include = set(columns)
        python_row = record.model_dump(include=include)
        json_row = record.model_dump(mode="json", include=include)

        values = []
        for name in columns:
            column = self.column(name)
            if column.affinity == BLOB:
                value = python_row[name]
                values.append(bytes(value) if value is not None else None)
            elif column.is_json:
                value = json_row[name]
                values.append(json.dumps(value) if value is not None else None)
            else:
                values.append(json_row[name])
        return tuple(values)

    def _adapter(self, name: str) -> TypeAdapter:
        adapter = self._adapters.get(name)
        if adapter is None:
            adapter = TypeAdapter(self.model.model_fields[name].annotation)
            self._adapters[name] = adapter
        return adapter

    def decode(self, row: Mapping[str, Any]) -> BaseModel:
        """Rebuild a record from a row mapping of column name to value.

        Rows carrying only some columns are built without the missing
        fields, which keep their model defaults.
        """
        fields = self.model.model_fields
        values = {}
        try:
            for name, value in row.items():
                if value is None:
                    # NULL in a defaulted, non-optional field falls back to the default
                    _, nullable = _unwrap_optional(fields[name].annotation)
                    if not nullable and not fields[name].is_required():
                        continue
                elif self.column(name).is_json:
                    value = json.loads(value)
                values[name] = value

            required = {name for name, info in fields.items() if info.is_required()}
            if required <= set(values):
                return self.model.model_validate(values)

            validated = {
                name: self._adapter(name).validate_python(value)
                for name, value in values.items()
            }
            return self.model.model_construct(_fields_set=set(validated), **validated)
        except (ValidationError, json.JSONDecodeError) as exc:
            raise SchemaError(f"Cannot decode row of {self.name!r}: {exc}") from exc


def table(
    name: str | None = None,
    *,
    primary_key: str | Iterable[str] = (),
    unique: Iterable[str | Iterable[str]] = (),
    autoincrement: bool = False,
):
    """Class decorator registering the table schema of a record model."""

    def register(model: type[ModelT]) -> type[ModelT]:
        schema = TableSchema.from_model(
            model,
            name=name,
            primary_key=primary_key,
            unique=unique,
            autoincrement=autoincrement,
        )
        setattr(model, SCHEMA_ATTRIBUTE, schema)
        return model

    return register


def schema_of(model: type[BaseModel]) -> TableSchema:
    """Return the schema registered for ``model``, deriving a default one."""
    schema = model.__dict__.get(SCHEMA_ATTRIBUTE) if isinstance(model, type) else None
    if schema is None:
        schema = TableSchema.from_model(model)
        setattr(model, SCHEMA_ATTRIBUTE, schema)
    return schema
