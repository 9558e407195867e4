"""
DocStore Database Tests
=======================
End-to-end behaviour of the table store:
  ✔ ready signal and bootstrap of the record file
  ✔ users scenario: auto-increment ids, email validation, fetch,
    update, delete, truncate
  ✔ update atomicity and uniqueness on update
  ✔ commit: single writer, empty-store refusal, round-trip
  ✔ schema file persistence and load_schemas
  ✔ external file changes
"""

import datetime
import json
import os
import re
import shutil
import sys
import tempfile
import threading
from pathlib import Path

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import engine.database
from engine.database import Database
from engine.options import DatabaseOptions
from storage.schema import Schema
from storage.errors import (
    AttemptToInsertWithoutSchemaError, CorruptDatabaseFileError, DatabaseError,
    RequiredFieldError, SchemaExistsError, TableExistsError, TableNotFoundError,
    TypeMismatchError, UniqueConstraintViolation, ValidationFunctionError,
)


EMAIL_RE = re.compile(r"^[^@\s]+@([A-Za-z0-9-]+\.)+[A-Za-z]{2,}$")


def validate_email(email: str) -> bool:
    return EMAIL_RE.match(email.lower()) is not None


def users_schema() -> Schema:
    schema = Schema("users")
    schema.add_column("id", required=True, auto_increment=True, unique=True, type=int)
    schema.add_column("name", required=True, type=str)
    schema.add_column("email", required=True, type=str, validate_func=validate_email)
    return schema


# ═══════════════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def tmp_dir():
    path = tempfile.mkdtemp(prefix="docstore_db_test_")
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def db(tmp_dir):
    database = Database(file="TestDB", data_dir=tmp_dir, watch=False).wait_ready(10)
    yield database
    database.close()


@pytest.fixture
def users_db(db):
    """Database with a populated users table (8 rows)."""
    db.create_table(users_schema())
    for name in ["Bob", "Bob", "Cody", "Rebebak", "Noah", "John", "Philis", "Tiny"]:
        db.insert("users", {"name": name, "email": f"{name.lower()}@email.com"})
    return db


# ═══════════════════════════════════════════════════════════════════════════
# 1. Bootstrap & Ready Signal
# ═══════════════════════════════════════════════════════════════════════════

class TestBootstrap:

    def test_creates_missing_file(self, tmp_dir):
        with Database(file="fresh", data_dir=tmp_dir, watch=False) as db:
            assert db.ready
            assert db.file == (Path(tmp_dir) / "fresh.json").resolve()
            assert json.loads(db.file.read_text(encoding="utf-8")) == {}
            assert db.tables() == []

    def test_loads_existing_file(self, tmp_dir):
        path = Path(tmp_dir) / "existing.json"
        path.write_text('{"users": [{"id": 1, "name": "Bob"}]}', encoding="utf-8")
        with Database(file="existing", data_dir=tmp_dir, watch=False) as db:
            assert db.fetch("users") == [{"id": 1, "name": "Bob"}]

    def test_empty_file_is_empty_store(self, tmp_dir):
        (Path(tmp_dir) / "blank.json").write_text("", encoding="utf-8")
        with Database(file="blank", data_dir=tmp_dir, watch=False) as db:
            assert db.tables() == []

    def test_corrupt_file_fails_ready(self, tmp_dir):
        (Path(tmp_dir) / "bad.json").write_text("{oops", encoding="utf-8")
        db = Database(file="bad", data_dir=tmp_dir, watch=False)
        try:
            with pytest.raises(CorruptDatabaseFileError):
                db.wait_ready(10)
            assert not db.ready
        finally:
            db.close()

    def test_directory_at_path_fails_ready(self, tmp_dir):
        (Path(tmp_dir) / "dir.json").mkdir()
        with pytest.raises(DatabaseError):
            with Database(file="dir", data_dir=tmp_dir, watch=False):
                pass

    def test_on_ready_callback(self, tmp_dir):
        fired = threading.Event()
        seen = []
        db = Database(file="cb", data_dir=tmp_dir, watch=False)

        def _callback(database):
            seen.append(database)
            fired.set()

        db.on_ready(_callback)
        try:
            assert fired.wait(10)
            assert seen == [db]
        finally:
            db.close()

    def test_accepts_option_mapping(self, tmp_dir):
        opts = {"file": "mapped", "schemaFile": "s.json", "dataDir": tmp_dir, "watch": False}
        with Database(opts) as db:
            assert db.schema_file == (Path(tmp_dir) / "s.json").resolve()
            assert db.options.cache_time == 3_600_000

    def test_watcher_started_and_stopped(self, tmp_dir):
        db = Database(file="watched", data_dir=tmp_dir, watch_interval=60).wait_ready(10)
        assert db._watcher is not None and db._watcher.running
        db.close()
        assert not db._watcher.running


# ═══════════════════════════════════════════════════════════════════════════
# 2. Users Scenario
# ═══════════════════════════════════════════════════════════════════════════

class TestUsersScenario:

    def test_create_table(self, db):
        db.create_table(users_schema())
        assert db.has_table("users")
        assert db.fetch("users") == []

    def test_insert_assigns_sequential_ids(self, db):
        db.create_table(users_schema())
        first = db.insert("users", {"name": "Bob", "email": "bob@email.com"})
        second = db.insert("users", {"name": "Bob", "email": "bob@email.com"})
        assert first == {"id": 1, "name": "Bob", "email": "bob@email.com"}
        assert second["id"] == 2
        assert db.get_schema("users").last_id == 2

    def test_insert_many(self, users_db):
        assert len(users_db.fetch("users")) == 8
        assert [r["id"] for r in users_db.fetch("users")] == list(range(1, 9))

    def test_invalid_name_type(self, users_db):
        with pytest.raises(TypeMismatchError):
            users_db.insert("users", {"name": 1, "email": "bob@email.com"})
        assert users_db.count("users") == 8
        assert users_db.get_schema("users").last_id == 8

    def test_invalid_email(self, users_db):
        with pytest.raises(ValidationFunctionError):
            users_db.insert("users", {"name": "Bob", "email": "bob.email.com"})
        assert users_db.count("users") == 8

    def test_missing_required(self, users_db):
        with pytest.raises(RequiredFieldError):
            users_db.insert("users", {"email": "x@email.com"})

    def test_fetch_with_predicate(self, users_db):
        assert len(users_db.fetch("users", lambda r: r["name"].lower() == "bob")) == 2
        assert len(users_db.fetch("users", lambda r: r["name"].lower() == "cody")) == 1
        assert len(users_db.fetch("users", lambda r: r["id"] == 1)) == 1
        assert len(users_db.fetch("users", lambda r: "email.com" in r["email"])) == 8

    def test_fetch_returns_copies(self, users_db):
        users_db.fetch("users")[0]["name"] = "Mallory"
        assert users_db.fetch("users")[0]["name"] == "Bob"

    def test_update_with_invalid_data(self, users_db):
        with pytest.raises(ValidationFunctionError, match="email"):
            users_db.update("users", {"email": "Cody.gmail.com"},
                            lambda r: r["name"].lower() == "cody")
        assert users_db.fetch("users", lambda r: r["name"] == "Cody")[0]["email"] == "cody@email.com"

    def test_update_names_with_o(self, users_db):
        affected = users_db.update("users", {"name": "_oooo"}, lambda r: "o" in r["name"])
        assert affected == 5
        names = [r["name"] for r in users_db.fetch("users")]
        assert names.count("_oooo") == 5
        assert {"Rebebak", "Philis", "Tiny"} <= set(names)

    def test_update_keeps_ids(self, users_db):
        users_db.update("users", {"id": 100, "name": "X"}, lambda r: r["id"] == 3)
        row = users_db.fetch("users", lambda r: r["name"] == "X")[0]
        assert row["id"] == 3

    def test_delete(self, users_db):
        removed = users_db.delete("users", lambda r: r["name"].lower() == "philis")
        assert removed == 1
        assert users_db.count("users") == 7

    def test_delete_all(self, users_db):
        assert users_db.delete("users") == 8
        assert users_db.fetch("users") == []

    def test_truncate(self, users_db):
        with pytest.raises(TableNotFoundError):
            users_db.truncate("products")
        users_db.truncate("users")
        assert users_db.fetch("users") == []
        assert users_db.get_schema("users").last_id == 8

    def test_ids_not_reused_after_delete(self, users_db):
        users_db.delete("users", lambda r: r["id"] == 8)
        record = users_db.insert("users", {"name": "Ann", "email": "ann@email.com"})
        assert record["id"] == 9


# ═══════════════════════════════════════════════════════════════════════════
# 3. Table Errors
# ═══════════════════════════════════════════════════════════════════════════

class TestTableErrors:

    def test_missing_table(self, db):
        for op in (lambda: db.fetch("nope"), lambda: db.update("nope", {}),
                   lambda: db.delete("nope"), lambda: db.drop("nope"),
                   lambda: db.truncate("nope")):
            with pytest.raises(TableNotFoundError):
                op()

    def test_insert_without_schema_checked_first(self, db):
        with pytest.raises(AttemptToInsertWithoutSchemaError):
            db.insert("nope", {"name": "Bob"})

    def test_create_existing_table(self, db):
        schema = users_schema()
        db.create_table(schema)
        with pytest.raises(TableExistsError):
            db.create_table(schema)
        with pytest.raises(TableExistsError):
            db.create_table(users_schema())

    def test_schema_exists_without_records(self, tmp_dir):
        with Database(file="s", data_dir=tmp_dir, watch=False) as db:
            db.create_table(users_schema())
            db.commit().result(10)
            db.flush(10)
        with Database(file="other", data_dir=tmp_dir, watch=False) as db:
            db.load_schemas().result(10)
            with pytest.raises(SchemaExistsError):
                db.create_table(users_schema())
            # The restored schema itself may back a new table
            db.create_table(db.get_schema("users"))
            assert db.has_table("users")

    def test_unstorable_default_leaves_no_table(self, db):
        schema = users_schema()
        schema.get_column("name").default = datetime.date(2020, 1, 1)
        with pytest.raises(TypeError):
            db.create_table(schema)
        assert db.get_schema("users") is None
        assert not db.has_table("users")
        assert db.tables() == []

    def test_unstorable_schema_rejects_insert(self, db):
        schema = users_schema()
        db.create_table(schema)
        schema.get_column("name").default = datetime.date(2020, 1, 1)
        with pytest.raises(TypeError):
            db.insert("users", {"name": "Bob", "email": "bob@email.com"})
        assert db.count("users") == 0
        assert schema.last_id == 0

    def test_drop(self, users_db):
        assert users_db.drop("users") is True
        assert not users_db.has_table("users")
        assert users_db.get_schema("users") is None
        users_db.create_table(users_schema())
        assert users_db.insert("users", {"name": "Bob", "email": "bob@email.com"})["id"] == 1


# ═══════════════════════════════════════════════════════════════════════════
# 4. Update Semantics
# ═══════════════════════════════════════════════════════════════════════════

class TestUpdate:

    @pytest.fixture
    def codes_db(self, db):
        schema = Schema("codes")
        schema.add_column("id", type=int, auto_increment=True)
        schema.add_column("code", type=str, unique=True, required=True)
        schema.add_column("note", type=str)
        db.create_table(schema)
        for code in ("A", "B", "C"):
            db.insert("codes", {"code": code})
        return db

    def test_update_own_unique_value(self, codes_db):
        assert codes_db.update("codes", {"note": "hi"}, lambda r: r["code"] == "A") == 1
        assert codes_db.fetch("codes", lambda r: r["code"] == "A")[0]["note"] == "hi"

    def test_update_to_taken_unique_value(self, codes_db):
        with pytest.raises(UniqueConstraintViolation):
            codes_db.update("codes", {"code": "B"}, lambda r: r["code"] == "A")
        assert [r["code"] for r in codes_db.fetch("codes")] == ["A", "B", "C"]

    def test_batch_unique_conflict_leaves_table_unchanged(self, codes_db):
        with pytest.raises(UniqueConstraintViolation):
            codes_db.update("codes", {"code": "Z"})
        assert [r["code"] for r in codes_db.fetch("codes")] == ["A", "B", "C"]

    def test_failure_after_matches_leaves_table_unchanged(self, codes_db):
        with pytest.raises(TypeMismatchError):
            codes_db.update("codes", {"note": 5})
        assert all(r["note"] is None for r in codes_db.fetch("codes"))

    def test_no_matches(self, codes_db):
        assert codes_db.update("codes", {"note": "x"}, lambda r: False) == 0


# ═══════════════════════════════════════════════════════════════════════════
# 5. Persistence
# ═══════════════════════════════════════════════════════════════════════════

class TestPersistence:

    def test_commit_empty_store_refused(self, db, caplog):
        before = db.file.read_text(encoding="utf-8")
        with caplog.at_level("WARNING", logger="engine.database"):
            assert db.commit().result(10) is False
        assert "empty store" in caplog.text
        assert db.file.read_text(encoding="utf-8") == before

    def test_commit_writes_records(self, users_db):
        assert users_db.commit().result(10) is True
        on_disk = json.loads(users_db.file.read_text(encoding="utf-8"))
        assert on_disk == {"users": users_db.fetch("users")}

    def test_commit_snapshots_state(self, users_db):
        future = users_db.commit()
        users_db.truncate("users")
        future.result(10)
        on_disk = json.loads(users_db.file.read_text(encoding="utf-8"))
        assert len(on_disk["users"]) == 8

    def test_commits_land_in_order(self, users_db):
        futures = []
        for i in range(5):
            users_db.delete("users", lambda r, i=i: r["id"] == i + 1)
            futures.append(users_db.commit())
        assert [f.result(10) for f in futures] == [True] * 5
        on_disk = json.loads(users_db.file.read_text(encoding="utf-8"))
        assert [r["id"] for r in on_disk["users"]] == [6, 7, 8]

    def test_roundtrip(self, tmp_dir):
        with Database(file="rt", data_dir=tmp_dir, watch=False) as db:
            db.create_table(users_schema())
            db.insert("users", {"name": "Bob", "email": "bob@email.com"})
            db.create_table(Schema("empty"))
            db.commit().result(10)
            expected = {name: db.fetch(name) for name in db.tables()}
        with Database(file="rt", data_dir=tmp_dir, watch=False) as db:
            assert {name: db.fetch(name) for name in db.tables()} == expected

    def test_schema_file_tracks_changes(self, db):
        db.create_table(users_schema())
        db.flush(10)
        data = json.loads(db.schema_file.read_text(encoding="utf-8"))
        assert data["users"]["lastID"] == 0
        assert list(data["users"]["columns"]) == ["id", "name", "email"]
        assert data["users"]["columns"]["email"]["validateFunc"] is True

        db.insert("users", {"name": "Bob", "email": "bob@email.com"})
        db.insert("users", {"name": "Ann", "email": "ann@email.com"})
        db.flush(10)
        data = json.loads(db.schema_file.read_text(encoding="utf-8"))
        assert data["users"]["lastID"] == 2

        db.drop("users")
        db.flush(10)
        assert json.loads(db.schema_file.read_text(encoding="utf-8")) == {}

    def test_load_schemas_restores_tables(self, tmp_dir):
        with Database(file="ls", data_dir=tmp_dir, watch=False) as db:
            db.create_table(users_schema())
            db.insert("users", {"name": "Bob", "email": "bob@email.com"})
            db.insert("users", {"name": "Ann", "email": "ann@email.com"})
            db.commit().result(10)

        with Database(file="ls", data_dir=tmp_dir, watch=False) as db:
            # Schemas are not restored automatically
            with pytest.raises(AttemptToInsertWithoutSchemaError):
                db.insert("users", {"name": "Cy", "email": "cy@email.com"})
            schemas = db.load_schemas().result(10)
            assert schemas["users"].last_id == 2
            assert db.insert("users", {"name": "Cy", "email": "cy@email.com"})["id"] == 3
            # Predicates are not persisted
            assert db.get_schema("users").get_column("email").validate_func is None

    def test_load_schemas_without_file(self, db):
        assert db.load_schemas().result(10) == {}

    def test_closed_database_rejects_writes(self, tmp_dir):
        db = Database(file="closed", data_dir=tmp_dir, watch=False).wait_ready(10)
        db.close()
        db.close()
        with pytest.raises(DatabaseError):
            db.commit()
        with pytest.raises(DatabaseError):
            db.create_table(users_schema())

    def test_closed_database_rejects_record_operations(self, users_db):
        users_db.close()
        for op in (lambda: users_db.fetch("users"), lambda: users_db.count("users"),
                   lambda: users_db.update("users", {"name": "X"}),
                   lambda: users_db.delete("users"), lambda: users_db.truncate("users"),
                   lambda: users_db.insert("users", {"name": "X", "email": "x@email.com"})):
            with pytest.raises(DatabaseError):
                op()

    def test_load_schemas_counter_follows_records(self, tmp_dir):
        with Database(file="lag", data_dir=tmp_dir, watch=False) as db:
            db.create_table(users_schema())
            db.flush(10)
            rows = [{"id": 1, "name": "Bob", "email": "bob@email.com"},
                    {"id": 2, "name": "Ann", "email": "ann@email.com"}]
            db.file.write_text(json.dumps({"users": rows}), encoding="utf-8")

        with Database(file="lag", data_dir=tmp_dir, watch=False) as db:
            schemas = db.load_schemas().result(10)
            assert schemas["users"].last_id == 2
            assert db.insert("users", {"name": "Cy", "email": "cy@email.com"})["id"] == 3


# ═══════════════════════════════════════════════════════════════════════════
# 6. External Changes
# ═══════════════════════════════════════════════════════════════════════════

class TestExternalChanges:

    def test_change_ignored_by_default(self, users_db):
        users_db.file.write_text('{"other": []}', encoding="utf-8")
        users_db._on_file_change(users_db.file)
        assert users_db.tables() == ["users"]

    def test_reload_on_change(self, tmp_dir):
        with Database(file="rl", data_dir=tmp_dir, watch=False, reload_on_change=True) as db:
            db.file.write_text('{"other": [{"a": 1}]}', encoding="utf-8")
            db._on_file_change(db.file)
            assert db.fetch("other") == [{"a": 1}]

    def test_reload_raises_id_counter(self, tmp_dir):
        with Database(file="rc", data_dir=tmp_dir, watch=False, reload_on_change=True) as db:
            db.create_table(users_schema())
            rows = [{"id": 1, "name": "Bob", "email": "bob@email.com"},
                    {"id": 2, "name": "Ann", "email": "ann@email.com"}]
            db.file.write_text(json.dumps({"users": rows}), encoding="utf-8")
            db._on_file_change(db.file)
            assert db.get_schema("users").last_id == 2
            assert db.insert("users", {"name": "Cy", "email": "cy@email.com"})["id"] == 3
            ids = [r["id"] for r in db.fetch("users")]
            assert ids == [1, 2, 3]

    def test_own_commit_not_seen_as_external_change(self, tmp_dir, monkeypatch):
        db = Database(file="own", data_dir=tmp_dir, watch=True, watch_interval=60,
                      reload_on_change=True).wait_ready(10)
        try:
            db.create_table(users_schema())
            db.insert("users", {"name": "Bob", "email": "bob@email.com"})
            db.flush(10)

            entered, release = threading.Event(), threading.Event()
            real_write = engine.database.write_atomic

            def gated_write(path, content):
                if path == db.file:
                    entered.set()
                    release.wait(10)
                real_write(path, content)

            monkeypatch.setattr(engine.database, "write_atomic", gated_write)
            future = db.commit()
            assert entered.wait(10)
            db.insert("users", {"name": "Ann", "email": "ann@email.com"})

            results = []
            poller = threading.Thread(target=lambda: results.append(db._watcher.poll()))
            poller.start()
            poller.join(0.2)
            release.set()
            assert future.result(10) is True
            poller.join(10)

            assert results == [False]
            assert db.count("users") == 2
        finally:
            release.set()
            db.close()

    def test_reload_failure_keeps_state(self, tmp_dir, caplog):
        with Database(file="rf", data_dir=tmp_dir, watch=False, reload_on_change=True) as db:
            db.create_table(Schema("t"))
            db.file.write_text("{broken", encoding="utf-8")
            with caplog.at_level("WARNING", logger="engine.database"):
                db._on_file_change(db.file)
            assert db.tables() == ["t"]
            assert "Couldn't reload" in caplog.text


# ═══════════════════════════════════════════════════════════════════════════
# 7. Options
# ═══════════════════════════════════════════════════════════════════════════

class TestOptions:

    def test_defaults(self):
        opts = DatabaseOptions()
        assert opts.file == "database"
        assert opts.record_path == (Path(".") / "database.json").resolve()
        assert opts.schema_path == (Path(".") / "schema.json").resolve()

    def test_camel_case_keys(self):
        opts = DatabaseOptions.from_dict({"schemaFile": "x.json", "cacheTime": 5})
        assert opts.schema_file == "x.json"
        assert opts.cache_time == 5

    def test_unknown_key(self):
        with pytest.raises(ValueError):
            DatabaseOptions.from_dict({"bogus": 1})

    def test_overrides_keep_other_fields(self):
        opts = DatabaseOptions(file="a", watch=False).with_overrides(data_dir="/tmp")
        assert opts.file == "a"
        assert opts.watch is False
        assert opts.data_dir == "/tmp"
