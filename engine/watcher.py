"""
DocStore File Watcher
=====================
Polls a file's (mtime, size) signature on a daemon thread and calls a
callback when it changes. Polling keeps it portable; the interval is
coarse on purpose since the store only reacts to changes made by other
processes.

Thread safety: start()/stop() may be called from any thread. The
callback runs on the watcher thread. Writes made inside writing() hold
the signature lock, so a poll never observes our own half-finished
write as an external change.
"""

import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, Tuple

logger = logging.getLogger(__name__)

Signature = Optional[Tuple[float, int]]


def file_signature(path: Path) -> Signature:
    """(mtime, size) of a file, or None when it does not exist."""
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return None
    return (st.st_mtime, st.st_size)


class FileWatcher:
    """Invoke `on_change(path)` whenever the watched file's signature changes."""

    def __init__(self, path: Path, on_change: Callable[[Path], None],
                 interval: float = 5.0):
        self.path = Path(path)
        self.interval = interval
        self._on_change = on_change
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._signature: Signature = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._signature = file_signature(self.path)
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"docstore-watch-{self.path.name}", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def acknowledge(self) -> None:
        """Record the current signature so a change we caused is not reported."""
        with self._lock:
            self._signature = file_signature(self.path)

    @contextmanager
    def writing(self) -> Iterator[None]:
        """Hold off polling while we write the file, then acknowledge the result."""
        with self._lock:
            try:
                yield
            finally:
                self._signature = file_signature(self.path)

    def poll(self) -> bool:
        """Check once. Returns True if a change was reported."""
        with self._lock:
            current = file_signature(self.path)
            if current == self._signature:
                return False
            self._signature = current
        self._on_change(self.path)
        return True

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.poll()
            except Exception:
                logger.exception("File watcher callback failed for %s", self.path)
