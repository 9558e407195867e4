"""
DocStore: schema-validated JSON document store
=============================================
Command-line inspector for a database file.

Usage:
    python main.py [options] COMMAND [TABLE]

Commands:
    tables          List tables and their record counts
    show TABLE      Print every record of a table
    count TABLE     Print the number of records in a table
    schema [TABLE]  Print column definitions from the schema file
"""

import logging
import os
import sys
from typing import List, Optional, TextIO

from cli.renderer import MODES, Renderer
from engine.database import Database
from engine.options import DatabaseOptions


def print_help(output: Optional[TextIO] = None):
    print("""
DocStore: schema-validated JSON document store

Usage:
    python main.py [options] tables
    python main.py [options] show TABLE
    python main.py [options] count TABLE
    python main.py [options] schema [TABLE]

Options:
    --help              Show this help
    --data-dir DIR      Directory holding the database files (default: .)
    --file NAME         Record file name without .json (default: database)
    --schema-file PATH  Schema file (default: DIR/schema.json)
    --mode M            Output mode: table, vertical, raw (default: table)
    --verbose           Log engine activity to stderr
""", file=output or sys.stdout)


def run_command(db: Database, command: str, args: List[str], renderer: Renderer) -> None:
    """Execute a single inspector command against an open database."""
    if command == "tables":
        rows = [{"table": name, "records": db.count(name)} for name in db.tables()]
        renderer.render_rows(rows, ["table", "records"])

    elif command == "show":
        table = _require_table_arg(command, args)
        db.load_schemas().result()
        schema = db.get_schema(table)
        columns = schema.column_names() if schema is not None else None
        renderer.render_rows(db.fetch(table), columns)

    elif command == "count":
        table = _require_table_arg(command, args)
        renderer.render_message(str(db.count(table)))

    elif command == "schema":
        schemas = db.load_schemas().result()
        names = args[:1] or sorted(schemas)
        rows = []
        for name in names:
            if name not in schemas:
                raise KeyError(f"No schema stored for table '{name}'")
            for column, definition in schemas[name].serialize()["columns"].items():
                rows.append({"table": name, "column": column, **definition})
        renderer.render_rows(rows)

    else:
        raise ValueError(f"Unknown command: {command!r}")


def _require_table_arg(command: str, args: List[str]) -> str:
    if not args:
        raise ValueError(f"'{command}' needs a table name")
    return args[0]


def main(argv: Optional[List[str]] = None) -> int:
    """Parse CLI arguments and dispatch. Returns the process exit code."""
    args = sys.argv[1:] if argv is None else list(argv)

    if not args or "--help" in args or "-h" in args:
        print_help()
        return 0

    options = {"data_dir": os.getcwd(), "watch": False}
    mode = "table"
    verbose = False
    positional: List[str] = []

    i = 0
    while i < len(args):
        if args[i] == "--data-dir" and i + 1 < len(args):
            options["data_dir"] = args[i + 1]
            i += 2
        elif args[i] == "--file" and i + 1 < len(args):
            options["file"] = args[i + 1]
            i += 2
        elif args[i] == "--schema-file" and i + 1 < len(args):
            options["schema_file"] = args[i + 1]
            i += 2
        elif args[i] == "--mode" and i + 1 < len(args):
            mode = args[i + 1]
            i += 2
        elif args[i] == "--verbose":
            verbose = True
            i += 1
        elif args[i].startswith("-"):
            print(f"Unknown option: {args[i]}", file=sys.stderr)
            print_help(sys.stderr)
            return 1
        else:
            positional.append(args[i])
            i += 1

    if mode not in MODES:
        print(f"Unknown mode: {mode}", file=sys.stderr)
        return 1
    if not positional:
        print_help(sys.stderr)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    renderer = Renderer(mode=mode)
    command, rest = positional[0], positional[1:]
    try:
        with Database(DatabaseOptions.from_dict(options)) as db:
            run_command(db, command, rest, renderer)
    except Exception as e:
        renderer.render_error(e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
