"""
DocStore File Serializer
========================
JSON encoding of the two backing files and the write strategy for both.

Record file:  {"users": [{"id": 1, "name": "Bob"}, ...], ...}
Schema file:  {"users": {"lastID": 1, "columns": {...}}, ...}

Safety guarantees:
  - Atomic writes: content goes to a temp file in the target directory,
    is fsync'd, then renamed over the target with os.replace(). A crash
    mid-write leaves the previous file intact.
  - Encoding happens before any file is opened, so an unserializable
    value never truncates the existing file.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Union

from storage.errors import CorruptDatabaseFileError, DatabaseError
from storage.schema import Schema

PathLike = Union[str, Path]


# ─── Encoding ───────────────────────────────────────────────────────────────

def encode_records(tables: Dict[str, List[dict]]) -> str:
    """Serialize the table -> records map for the record file."""
    return json.dumps(tables, ensure_ascii=False)


def encode_schemas(schemas: Dict[str, Schema]) -> str:
    """Serialize the table -> schema map for the schema file."""
    data = {name: schema.serialize() for name, schema in schemas.items()}
    return json.dumps(data, indent="\t", ensure_ascii=False)


# ─── Decoding ───────────────────────────────────────────────────────────────

def decode_records(text: str, source: str = "<string>") -> Dict[str, List[dict]]:
    """
    Parse record file content. Empty content is an empty store.
    Raises CorruptDatabaseFileError if the content is not a map of lists.
    """
    if not text.strip():
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise CorruptDatabaseFileError(f"Corrupted database file at {source}: {e}")

    if not isinstance(data, dict):
        raise CorruptDatabaseFileError(
            f"Corrupted database file at {source}: expected an object of tables")
    for table, records in data.items():
        if not isinstance(records, list):
            raise CorruptDatabaseFileError(
                f"Corrupted database file at {source}: table '{table}' is not a list")
    return data


def decode_schemas(text: str, source: str = "<string>") -> Dict[str, Schema]:
    """Parse schema file content into Schema objects. Empty content is no schemas."""
    if not text.strip():
        return {}
    try:
        data = json.loads(text)
        return {name: Schema.from_dict(name, entry) for name, entry in data.items()}
    except (json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as e:
        raise CorruptDatabaseFileError(f"Corrupted schema file at {source}: {e}")


# ─── File I/O ───────────────────────────────────────────────────────────────

def read_text(path: PathLike) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def write_atomic(path: PathLike, content: str) -> None:
    """
    Replace `path` with `content` using temp file + rename.
    The temp file is removed if anything fails before the rename.
    """
    path = Path(path)
    if path.exists() and not path.is_file():
        raise DatabaseError(f"Cannot write {path}: not a regular file")
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.stem}_", suffix=".tmp"
    )
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def load_records(path: PathLike) -> Dict[str, List[dict]]:
    return decode_records(read_text(path), source=str(path))


def load_schemas(path: PathLike) -> Dict[str, Schema]:
    """Read the schema file. A missing file means no schemas."""
    path = Path(path)
    if not path.exists():
        return {}
    return decode_schemas(read_text(path), source=str(path))
