"""
DocStore Column Type System
===========================
Defines the closed set of column kinds: STRING, NUMBER, BOOLEAN.
Each kind knows how to check a Python value and how it is named in
the schema file.

Notes:
  Kinds are compared by enum identity, never by matching type names,
  so "String", "string" and str all resolve to the same member before
  any comparison happens.
"""

from enum import Enum
from typing import Any, Union


class ColumnType(Enum):
    """Supported column kinds in DocStore."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"


# ─── Python type aliases ────────────────────────────────────────────────────

_PYTHON_TYPES: dict[type, ColumnType] = {
    str: ColumnType.STRING,
    int: ColumnType.NUMBER,
    float: ColumnType.NUMBER,
    bool: ColumnType.BOOLEAN,
}


# ─── Validation ─────────────────────────────────────────────────────────────

def matches(value: Any, kind: ColumnType) -> bool:
    """
    Check if a Python value belongs to the given ColumnType.
    None never matches; absence is handled by the validation engine.
    """
    if kind == ColumnType.NUMBER:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    elif kind == ColumnType.STRING:
        return isinstance(value, str)
    elif kind == ColumnType.BOOLEAN:
        return isinstance(value, bool)
    return False


def type_name_of(value: Any) -> str:
    """Describe a value's runtime type using column kind names where possible."""
    for kind in (ColumnType.BOOLEAN, ColumnType.NUMBER, ColumnType.STRING):
        if matches(value, kind):
            return kind.value
    if value is None:
        return "null"
    return type(value).__name__


def resolve_type(spec: Union[ColumnType, type, str, None]) -> ColumnType:
    """
    Convert a column type declaration to a ColumnType member.

    Accepts a ColumnType, one of the Python types str/int/float/bool,
    or a kind name such as 'number' (case-insensitive). None means STRING.
    """
    if spec is None:
        return ColumnType.STRING
    if isinstance(spec, ColumnType):
        return spec
    if isinstance(spec, type):
        try:
            return _PYTHON_TYPES[spec]
        except KeyError:
            raise ValueError(f"Unsupported column type: {spec.__name__}. "
                             f"Valid types: {[t.value for t in ColumnType]}")
    if isinstance(spec, str):
        normalized = spec.strip().lower()
        try:
            return ColumnType(normalized)
        except ValueError:
            raise ValueError(f"Unknown column type: {spec!r}. "
                             f"Valid types: {[t.value for t in ColumnType]}")
    raise ValueError(f"Cannot interpret {spec!r} as a column type")
