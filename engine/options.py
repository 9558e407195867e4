"""
Database construction options.

Accepts both the snake_case field names and the camelCase keys used by
existing configuration files (file, schemaFile, cacheTime).
"""

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

DEFAULT_FILE = "database"
DEFAULT_SCHEMA_FILE = "schema.json"
DEFAULT_CACHE_TIME_MS = 1000 * 60 * 60
DEFAULT_WATCH_INTERVAL = 5.0

_ALIASES = {
    "schemaFile": "schema_file",
    "cacheTime": "cache_time",
    "dataDir": "data_dir",
    "watchInterval": "watch_interval",
    "reloadOnChange": "reload_on_change",
}


@dataclass(frozen=True)
class DatabaseOptions:
    file: str = DEFAULT_FILE
    schema_file: Optional[str] = None
    # Milliseconds. Kept for configuration compatibility; nothing reads it yet.
    cache_time: int = DEFAULT_CACHE_TIME_MS
    data_dir: str = "."
    watch: bool = True
    watch_interval: float = DEFAULT_WATCH_INTERVAL
    reload_on_change: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "DatabaseOptions":
        """Build options from a mapping. Unknown keys raise ValueError."""
        return cls(**_normalize(data or {}))

    def with_overrides(self, **overrides) -> "DatabaseOptions":
        if not overrides:
            return self
        return replace(self, **_normalize(overrides))

    @property
    def record_path(self) -> Path:
        """Absolute path of the record file: <data_dir>/<file>.json."""
        return (Path(self.data_dir) / f"{self.file}.json").resolve()

    @property
    def schema_path(self) -> Path:
        if self.schema_file is None:
            return (Path(self.data_dir) / DEFAULT_SCHEMA_FILE).resolve()
        return (Path(self.data_dir) / self.schema_file).resolve()


def _normalize(data: Mapping[str, Any]) -> dict:
    known = {f.name for f in fields(DatabaseOptions)}
    kwargs = {}
    for key, value in data.items():
        name = _ALIASES.get(key, key)
        if name not in known:
            raise ValueError(f"Unknown database option: {key!r}")
        kwargs[name] = value
    return kwargs
