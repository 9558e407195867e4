"""
DocStore Validation Engine
==========================
Resolves a candidate value mapping against a table schema and produces
a complete record, or raises.

Per column, in schema order:
  1. auto-increment   next counter value, kept above ids already stored
  2. type check       supplied values must match the column kind
  3. uniqueness       no other row may hold the same value
  4. resolution       required / nullable / predicate / default

A value is "absent" when its key is missing or it is None. The returned
record holds exactly the schema's columns; unknown keys are dropped.
Nothing here mutates the table or the schema.
"""

import math
from typing import Any, Iterable, Optional

from storage.errors import (
    RequiredFieldError, TypeMismatchError, UniqueConstraintViolation,
    ValidationFunctionError,
)
from storage.schema import ColumnDefinition, Schema
from storage.types import ColumnType, matches, type_name_of


def next_id(schema: Schema) -> int:
    """Next value of the schema counter alone, ignoring ids present in the table."""
    return schema.last_id + 1


def highest_id(schema: Schema, rows: Iterable[dict]) -> int:
    """Largest numeric value held by any auto-increment column, or 0."""
    highest = 0
    columns = [c.name for c in schema.auto_increment_columns()]
    for row in rows:
        for name in columns:
            value = row.get(name)
            if (matches(value, ColumnType.NUMBER) and math.isfinite(value)
                    and value > highest):
                highest = value
    return math.ceil(highest)


def sync_counter(schema: Schema, rows: Iterable[dict]) -> int:
    """
    Raise the schema counter so it is never below an id already present
    in `rows`. Rows written by another process, or a schema file older
    than the record file, can hold ids the counter has not seen.
    Returns the (possibly raised) counter.
    """
    schema.last_id = max(schema.last_id, highest_id(schema, rows))
    return schema.last_id


def validate_record(data: dict, schema: Schema, existing: Iterable[dict],
                    current: Optional[dict] = None) -> dict:
    """
    Build a fully resolved record from `data`.

    `existing` are the rows already in the table. When validating an
    update, `current` is the row being replaced: it is left out of the
    uniqueness scan and keeps its auto-increment values.
    """
    existing = list(existing)
    rows = [row for row in existing if row is not current]
    record: dict[str, Any] = {}
    new_id = max(next_id(schema), highest_id(schema, existing) + 1)

    for name, column in schema.columns.items():
        if column.auto_increment:
            if current is not None:
                record[name] = current.get(name)
            else:
                record[name] = new_id
            continue

        value = data.get(name)
        if value is None:
            record[name] = _resolve_absent(column, schema.table_name)
            continue

        if not matches(value, column.type):
            raise TypeMismatchError(name, column.type.value, type_name_of(value),
                                    table=schema.table_name)

        if column.unique:
            _check_unique(column, value, rows, schema.table_name)

        if column.validate_func is not None and not column.validate_func(value):
            raise ValidationFunctionError(name, value, table=schema.table_name)

        record[name] = value

    return record


def _resolve_absent(column: ColumnDefinition, table: str) -> Any:
    if column.required:
        raise RequiredFieldError(column.name, table=table)
    if column.nullable:
        return None
    return column.default


def _check_unique(column: ColumnDefinition, value: Any, rows: list[dict], table: str) -> None:
    for row in rows:
        if row.get(column.name) == value:
            raise UniqueConstraintViolation(column.name, value, table=table)
