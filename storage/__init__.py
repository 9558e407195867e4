"""
DocStore Storage Layer
======================
Public API for schemas, validation and the JSON file format.

Usage:
    from storage import Schema, ColumnDefinition, ColumnType
    from storage import validate_record, encode_records, write_atomic
"""

from storage.types import ColumnType, matches, resolve_type
from storage.schema import ColumnDefinition, Schema
from storage.validation import validate_record, next_id, highest_id, sync_counter
from storage.serializer import (
    encode_records, encode_schemas, decode_records, decode_schemas,
    load_records, load_schemas, write_atomic,
)
from storage.errors import (
    DatabaseError, TableNotFoundError, TableExistsError, SchemaExistsError,
    DuplicateColumnError, AttemptToInsertWithoutSchemaError, InvalidDefaultError,
    CorruptDatabaseFileError, ValidationError, TypeMismatchError,
    UniqueConstraintViolation, RequiredFieldError, ValidationFunctionError,
)

__all__ = [
    "ColumnType", "matches", "resolve_type",
    "ColumnDefinition", "Schema",
    "validate_record", "next_id", "highest_id", "sync_counter",
    "encode_records", "encode_schemas", "decode_records", "decode_schemas",
    "load_records", "load_schemas", "write_atomic",
    "DatabaseError", "TableNotFoundError", "TableExistsError", "SchemaExistsError",
    "DuplicateColumnError", "AttemptToInsertWithoutSchemaError", "InvalidDefaultError",
    "CorruptDatabaseFileError", "ValidationError", "TypeMismatchError",
    "UniqueConstraintViolation", "RequiredFieldError", "ValidationFunctionError",
]
