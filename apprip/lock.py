"""
lock.py
Single-instance lock: at most one apprip run per host. fcntl.flock on a pid
file; the kernel drops the lock if the process dies.
"""
from __future__ import annotations
import fcntl, logging, os
from pathlib import Path
from .errors import LockError

log = logging.getLogger(__name__)


class SingleInstanceLock:
    def __init__(self, path: Path):
        self.path = Path(path)
        self._fh = None

    def __enter__(self):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self.path, "a+")
        except OSError as e:
            raise LockError(f"Cannot open lock file {self.path}: {e}") from e
        try:
            fcntl.flock(self._fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            self._fh.close()
            self._fh = None
            raise LockError(f"Another apprip instance holds {self.path}")
        self._fh.seek(0)
        self._fh.truncate()
        self._fh.write(f"{os.getpid()}\n")
        self._fh.flush()
        log.debug("Acquired single-instance lock: %s", self.path)
        return self

    def __exit__(self, exc_type, exc, tb):
        if self._fh is not None:
            fcntl.flock(self._fh.fileno(), fcntl.LOCK_UN)
            self._fh.close()
            self._fh = None
        return False
