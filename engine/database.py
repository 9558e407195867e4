"""
DocStore Database
=================
The table store: an in-memory map of table name -> records and table
name -> Schema, backed by two JSON files.

Lifecycle:
  1. Database(...) schedules a bootstrap on the writer thread: the record
     file is created with {} if missing, otherwise loaded.
  2. wait_ready() / on_ready() resolve once that bootstrap finishes.
     Every other operation is only safe to call after that point.
  3. create_table / insert / update / delete / truncate / drop work on
     memory synchronously and validate through storage.validation.
  4. commit() writes the record file; schema changes rewrite the schema
     file automatically.

Write discipline:
  All file writes go through a single-worker executor, so at most one
  write is in flight and writes land in the order they were requested.
  Content is encoded in the caller's thread when the write is requested;
  later in-memory changes never leak into an earlier write.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from engine.options import DatabaseOptions
from engine.watcher import FileWatcher
from storage.errors import (
    AttemptToInsertWithoutSchemaError, DatabaseError, SchemaExistsError,
    TableExistsError, TableNotFoundError,
)
from storage.schema import Schema
from storage.serializer import (
    encode_records, encode_schemas, load_records, load_schemas, write_atomic,
)
from storage.validation import sync_counter, validate_record

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Predicate = Callable[[Record], bool]


def _match_all(record: Record) -> bool:
    return True


class Database:
    """
    Schema-validated document store backed by a JSON file.

        db = Database(file="app", data_dir="./data").wait_ready()
        db.create_table(users)
        db.insert("users", {"name": "Bob", "email": "bob@email.com"})
        db.commit().result()

    Options may be passed as a DatabaseOptions, as a mapping (camelCase
    keys accepted), and/or as keyword overrides.
    """

    def __init__(self, options: Union[DatabaseOptions, Mapping[str, Any], None] = None,
                 **overrides):
        if not isinstance(options, DatabaseOptions):
            options = DatabaseOptions.from_dict(options)
        self.options = options.with_overrides(**overrides)

        self._data: Dict[str, List[Record]] = {}
        self._tables: Dict[str, Schema] = {}
        self._watcher: Optional[FileWatcher] = None
        self._closed = False
        self._close_lock = threading.Lock()
        self._schema_write_error: Optional[BaseException] = None

        self._writer = ThreadPoolExecutor(max_workers=1,
                                          thread_name_prefix="docstore-writer")
        self._ready: Future = self._writer.submit(self._bootstrap)

    # ─── Paths ──────────────────────────────────────────────────────

    @property
    def file(self) -> Path:
        """Full path of the record file."""
        return self.options.record_path

    @property
    def schema_file(self) -> Path:
        return self.options.schema_path

    # ─── Ready signal ───────────────────────────────────────────────

    @property
    def ready(self) -> bool:
        return (self._ready.done() and not self._ready.cancelled()
                and self._ready.exception() is None)

    def wait_ready(self, timeout: Optional[float] = None) -> "Database":
        """Block until the record file is loaded. Re-raises bootstrap failures."""
        self._ready.result(timeout)
        return self

    def on_ready(self, callback: Callable[["Database"], Any]) -> None:
        """
        Call `callback(db)` once bootstrap succeeds. If it already has,
        the callback runs immediately in the calling thread.
        """
        def _notify(future: Future) -> None:
            if not future.cancelled() and future.exception() is None:
                callback(self)

        self._ready.add_done_callback(_notify)

    def _bootstrap(self) -> "Database":
        path = self.file
        if not path.exists():
            write_atomic(path, encode_records({}))
            self._data = {}
            logger.info("Created database file %s", path)
        elif not path.is_file():
            raise DatabaseError(f"Database path {path} exists but is not a file")
        else:
            self._data = load_records(path)
            logger.info("Loaded %d table(s) from %s", len(self._data), path)

        if self.options.watch:
            self._watcher = FileWatcher(path, self._on_file_change,
                                        interval=self.options.watch_interval)
            self._watcher.start()
        return self

    # ─── Table Operations ───────────────────────────────────────────

    def create_table(self, schema: Schema) -> None:
        """
        Create a table governed by `schema`.
        Raises TableExistsError if the table already holds a record list,
        SchemaExistsError if a different schema is registered under its name.
        """
        self._ensure_open()
        name = schema.table_name
        if name in self._data:
            raise TableExistsError(name)

        registered = self._tables.get(name)
        if registered is not None and registered is not schema:
            raise SchemaExistsError(name)

        content = encode_schemas({**self._tables, name: schema})
        self._tables[name] = schema
        self._data[name] = []
        self._queue_schema_write(content)
        logger.debug("Created table '%s' with columns %s", name, schema.column_names())

    def drop(self, table: str) -> bool:
        """Remove a table, its records and its schema."""
        self._ensure_open()
        self._records(table, "drop")
        self._tables.pop(table, None)
        self._save_schemas()
        del self._data[table]
        logger.debug("Dropped table '%s'", table)
        return True

    def truncate(self, table: str) -> None:
        """Clear all records from a table. The schema and its id counter are kept."""
        self._ensure_open()
        self._records(table, "truncate").clear()
        logger.debug("Truncated table '%s'", table)

    def tables(self) -> List[str]:
        return list(self._data)

    def has_table(self, table: str) -> bool:
        return table in self._data

    def get_schema(self, table: str) -> Optional[Schema]:
        return self._tables.get(table)

    # ─── Record Operations ──────────────────────────────────────────

    def fetch(self, table: str, predicate: Optional[Predicate] = None) -> List[Record]:
        """
        Return copies of the records for which `predicate` is true, in
        table order. Without a predicate every record is returned.

            db.fetch("users", lambda r: r["name"] == "Shelly")
        """
        self._ensure_open()
        predicate = predicate or _match_all
        return [dict(r) for r in self._records(table) if predicate(r)]

    def count(self, table: str, predicate: Optional[Predicate] = None) -> int:
        self._ensure_open()
        predicate = predicate or _match_all
        return sum(1 for r in self._records(table) if predicate(r))

    def insert(self, table: str, data: Mapping[str, Any]) -> Record:
        """
        Validate `data` against the table schema and append it.
        Returns a copy of the stored record, auto-increment values included.
        """
        self._ensure_open()
        schema = self._tables.get(table)
        if schema is None:
            raise AttemptToInsertWithoutSchemaError(table)
        rows = self._records(table)
        sync_counter(schema, rows)

        record = validate_record(dict(data), schema, rows)
        schema.last_id += 1
        try:
            content = encode_schemas(self._tables)
        except Exception:
            schema.last_id -= 1
            raise
        rows.append(record)
        self._queue_schema_write(content)
        logger.debug("Inserted into '%s' (lastID=%d)", table, schema.last_id)
        return dict(record)

    def update(self, table: str, data: Mapping[str, Any],
               predicate: Optional[Predicate] = None) -> int:
        """
        Merge `data` into every record matching `predicate` and re-validate.
        Returns the number of records replaced.

        All matched records are validated before any is replaced: if one
        fails, the error propagates and the table is left unchanged.
        """
        self._ensure_open()
        rows = self._records(table, "update")
        schema = self._tables.get(table)
        if schema is None:
            raise AttemptToInsertWithoutSchemaError(table)
        predicate = predicate or _match_all

        working = list(rows)
        affected = 0
        for index, record in enumerate(rows):
            if not predicate(record):
                continue
            candidate = {**record, **data}
            working[index] = validate_record(candidate, schema, working, current=record)
            affected += 1

        rows[:] = working
        logger.debug("Updated %d record(s) in '%s'", affected, table)
        return affected

    def delete(self, table: str, predicate: Optional[Predicate] = None) -> int:
        """Delete records matching `predicate` (all of them if omitted). Returns the count."""
        self._ensure_open()
        rows = self._records(table, "delete")
        predicate = predicate or _match_all
        kept = [r for r in rows if not predicate(r)]
        removed = len(rows) - len(kept)
        rows[:] = kept
        logger.debug("Deleted %d record(s) from '%s'", removed, table)
        return removed

    def _records(self, table: str, action: str = "") -> List[Record]:
        try:
            return self._data[table]
        except KeyError:
            raise TableNotFoundError(table, action) from None

    # ─── Persistence ────────────────────────────────────────────────

    def commit(self) -> "Future[bool]":
        """
        Write every table to the record file.

        Returns a Future resolving to True once written. An empty store is
        never written (it would wipe the file); the Future then resolves
        to False and a warning is logged. I/O errors are re-raised by
        Future.result().
        """
        self._ensure_open()
        if not self._data:
            logger.warning("Aborting commit: refusing to write an empty store to %s",
                           self.file)
            skipped: Future = Future()
            skipped.set_result(False)
            return skipped

        content = encode_records(self._data)
        return self._writer.submit(self._write_records, content)

    def load_schemas(self) -> "Future[Dict[str, Schema]]":
        """
        Read the schema file and register schemas for tables that have
        none yet. Resolves to the registered schema for every table named
        in the file. Validation predicates are not stored and so are not
        restored.
        """
        self._ensure_open()
        return self._writer.submit(self._read_schemas)

    def flush(self, timeout: Optional[float] = None) -> None:
        """
        Wait for every queued write. Re-raises the last schema-file write
        error, if any happened since the previous flush.
        """
        self._writer.submit(lambda: None).result(timeout)
        error, self._schema_write_error = self._schema_write_error, None
        if error is not None:
            raise error

    def _write_records(self, content: str) -> bool:
        if self._watcher is None:
            write_atomic(self.file, content)
        else:
            with self._watcher.writing():
                write_atomic(self.file, content)
        logger.debug("Committed %d bytes to %s", len(content), self.file)
        return True

    def _save_schemas(self) -> Future:
        return self._queue_schema_write(encode_schemas(self._tables))

    def _queue_schema_write(self, content: str) -> Future:
        future = self._writer.submit(write_atomic, self.schema_file, content)
        future.add_done_callback(self._schema_write_done)
        return future

    def _schema_write_done(self, future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.error("Failed to write schema file %s: %s", self.schema_file, error)
            self._schema_write_error = error

    def _read_schemas(self) -> Dict[str, Schema]:
        loaded = load_schemas(self.schema_file)
        registered = {}
        for name, schema in loaded.items():
            registered[name] = self._tables.setdefault(name, schema)
            if name in self._data:
                sync_counter(registered[name], self._data[name])
        logger.debug("Loaded %d schema(s) from %s", len(loaded), self.schema_file)
        return registered

    # ─── External changes ───────────────────────────────────────────

    def _on_file_change(self, path: Path) -> None:
        if not self.options.reload_on_change:
            logger.info("Database file %s changed on disk; reload is disabled", path)
            return
        try:
            data = load_records(path)
        except (OSError, DatabaseError) as e:
            logger.warning("Couldn't reload database file %s: %s", path, e)
            return
        for name, rows in data.items():
            schema = self._tables.get(name)
            if schema is not None:
                sync_counter(schema, rows)
        self._data = data
        logger.info("Reloaded %d table(s) from %s", len(data), path)

    # ─── Shutdown ───────────────────────────────────────────────────

    def _ensure_open(self) -> None:
        if self._closed:
            raise DatabaseError("Database is closed")

    def close(self) -> None:
        """Stop watching the file and wait for queued writes to finish."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        # Bootstrap may still be starting the watcher until the writer drains.
        self._writer.shutdown(wait=True)
        if self._watcher is not None:
            self._watcher.stop()

    def __enter__(self) -> "Database":
        try:
            return self.wait_ready()
        except BaseException:
            self.close()
            raise

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        return f"Database({str(self.file)!r}, tables={self.tables()})"
