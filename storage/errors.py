"""
DocStore Errors
===============
Every error raised by the store derives from DatabaseError so callers
can catch the whole family at once. Validation errors also carry the
table and column they were raised for.
"""

from typing import Optional


class DatabaseError(Exception):
    pass


class TableNotFoundError(DatabaseError):
    def __init__(self, table: str, action: str = ""):
        self.table = table
        suffix = f" to {action} it" if action else ""
        super().__init__(f"Cannot find table '{table}'{suffix}.")


class TableExistsError(DatabaseError):
    def __init__(self, table: str):
        self.table = table
        super().__init__(f"Table '{table}' already exists.")


class SchemaExistsError(DatabaseError):
    def __init__(self, table: str):
        self.table = table
        super().__init__(f"Schema for table '{table}' already exists. "
                         f"You may want to call drop('{table}') first.")


class DuplicateColumnError(DatabaseError):
    def __init__(self, column: str, table: str = ""):
        self.table = table
        self.column = column
        super().__init__(f"Column name must be unique. "
                         f"There is already a column named '{column}'.")


class AttemptToInsertWithoutSchemaError(DatabaseError):
    def __init__(self, table: str):
        self.table = table
        super().__init__(f"Attempt to insert data into table '{table}' failed. "
                         f"No schema is registered for it.")


class CorruptDatabaseFileError(DatabaseError):
    pass


# ─── Validation errors ──────────────────────────────────────────────────────

class ValidationError(DatabaseError):
    """Base for errors raised while resolving a record against a schema."""

    def __init__(self, message: str, table: Optional[str] = None,
                 column: Optional[str] = None):
        self.table = table
        self.column = column
        super().__init__(message)


class TypeMismatchError(ValidationError, TypeError):
    def __init__(self, column: str, expected: str, actual: str,
                 table: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Unexpected type ({actual}) for column '{column}'; expecting {expected}.",
            table=table, column=column)


class UniqueConstraintViolation(ValidationError):
    def __init__(self, column: str, value, table: Optional[str] = None):
        self.value = value
        super().__init__(
            f"The value for column '{column}' must be unique; {value!r} is already present.",
            table=table, column=column)


class RequiredFieldError(ValidationError):
    def __init__(self, column: str, table: Optional[str] = None):
        super().__init__(
            f"Column '{column}' is undefined and is a required field.",
            table=table, column=column)


class ValidationFunctionError(ValidationError):
    def __init__(self, column: str, value, table: Optional[str] = None):
        self.value = value
        super().__init__(
            f"Validation failed for column '{column}' data ({value!r}).",
            table=table, column=column)


class InvalidDefaultError(DatabaseError):
    def __init__(self, column: str, value):
        self.column = column
        self.value = value
        super().__init__(f"Default for column '{column}' cannot be stored as JSON: {value!r}.")
