"""
DocStore Schema Definition
==========================
Defines table schemas: column name, type, constraints, default value,
and an optional validation predicate. Also holds the per-table id
counter used for auto-increment columns.

A schema serializes to the shape stored in the schema file:

    {"lastID": 3, "columns": {"id": {"type": "number", ...}, ...}}

Predicates cannot be stored as JSON, so the file only records whether
a column had one.
"""

import json
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from storage.errors import DuplicateColumnError, InvalidDefaultError
from storage.types import ColumnType, resolve_type


@dataclass
class ColumnDefinition:
    """Definition of a single column in a table schema."""
    name: str
    type: ColumnType = ColumnType.STRING
    unique: bool = False
    required: bool = False
    auto_increment: bool = False
    nullable: bool = True
    default: Optional[Any] = None
    validate_func: Optional[Callable[[Any], bool]] = None

    def __post_init__(self):
        self.type = resolve_type(self.type)
        try:
            json.dumps(self.default)
        except (TypeError, ValueError):
            raise InvalidDefaultError(self.name, self.default) from None

    def to_dict(self) -> dict:
        """Serialize column definition to a dictionary."""
        return {
            "type": self.type.value,
            "unique": self.unique,
            "required": self.required,
            "autoIncrement": self.auto_increment,
            "nullable": self.nullable,
            "default": self.default,
            "validateFunc": self.validate_func is not None,
        }

    @classmethod
    def from_dict(cls, name: str, d: dict) -> "ColumnDefinition":
        """Deserialize a column definition. Validation predicates are not restored."""
        return cls(
            name=name,
            type=d.get("type"),
            unique=d.get("unique", False),
            required=d.get("required", False),
            auto_increment=d.get("autoIncrement", False),
            nullable=d.get("nullable", True),
            default=d.get("default"),
        )


class Schema:
    """
    Column contract and id counter for one table.

    Columns keep insertion order; names are unique case-insensitively.
    """

    def __init__(self, table_name: str):
        self.table_name = table_name
        self.columns: dict[str, ColumnDefinition] = {}
        self.last_id: int = 0

    def __len__(self) -> int:
        return len(self.columns)

    def __repr__(self) -> str:
        return (f"Schema({self.table_name!r}, columns={self.column_names()}, "
                f"last_id={self.last_id})")

    def add_column(self, column: Union[ColumnDefinition, str], **options) -> ColumnDefinition:
        """
        Add a column to this table.

        Either pass a ColumnDefinition, or a column name plus any of the
        ColumnDefinition fields as keyword arguments:

            schema.add_column("email", type=str, required=True,
                              validate_func=is_email)

        Raises DuplicateColumnError if a column with the same name
        (ignoring case) already exists.
        """
        if isinstance(column, ColumnDefinition):
            if options:
                raise TypeError("Keyword options cannot be combined with a ColumnDefinition")
            definition = column
        else:
            definition = ColumnDefinition(name=column, **options)

        if self.has_column(definition.name):
            raise DuplicateColumnError(definition.name, self.table_name)

        self.columns[definition.name] = definition
        return definition

    def has_column(self, name: str) -> bool:
        lowered = name.lower()
        return any(existing.lower() == lowered for existing in self.columns)

    def column_names(self) -> list[str]:
        return list(self.columns)

    def get_column(self, name: str) -> ColumnDefinition:
        """Get a column definition by name (case-insensitive). Raises KeyError if not found."""
        if name in self.columns:
            return self.columns[name]
        lowered = name.lower()
        for existing, definition in self.columns.items():
            if existing.lower() == lowered:
                return definition
        raise KeyError(f"Column '{name}' not found in schema '{self.table_name}'. "
                       f"Available: {self.column_names()}")

    def auto_increment_columns(self) -> list[ColumnDefinition]:
        return [c for c in self.columns.values() if c.auto_increment]

    # ─── Serialization ──────────────────────────────────────────────

    def serialize(self) -> dict:
        return {
            "lastID": self.last_id,
            "columns": {name: c.to_dict() for name, c in self.columns.items()},
        }

    @classmethod
    def from_dict(cls, table_name: str, d: dict) -> "Schema":
        """Rebuild a schema from a serialize() result."""
        schema = cls(table_name)
        for name, column_data in d.get("columns", {}).items():
            schema.add_column(ColumnDefinition.from_dict(name, column_data))
        schema.last_id = int(d.get("lastID", 0))
        return schema
