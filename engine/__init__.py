# DocStore Engine Package
# =======================
# The table store, its construction options and the record file watcher.

from engine.options import DatabaseOptions
from engine.database import Database
from engine.watcher import FileWatcher
