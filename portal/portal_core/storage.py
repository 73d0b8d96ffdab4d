"""
Durable key/value storage for client state (session record, activity queue).

Values are strings (JSON documents written by their owners). FileStorage keeps
one file per key and replaces it atomically, so a reader never sees a
half-written record and a crash mid-write leaves the previous value intact.
MemoryStorage is the process-lifetime variant, used for ephemeral values such
as the login `state` and in tests.

FileStorage lets OSError from writes and removes propagate; each owner
decides how to absorb it.
"""

import os
import re
import tempfile
import threading
from pathlib import Path

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class FileStorage:
    """One `<key>.json` file per key under `directory`."""

    def __init__(self, directory):
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key):
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._dir / f"{key}.json"

    def get(self, key):
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set(self, key, value):
        path = self._path(key)
        fd, tmp = tempfile.mkstemp(dir=str(self._dir), prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except OSError:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise

    def remove(self, key):
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass


class MemoryStorage:
    def __init__(self, initial=None):
        self._data = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            return self._data.get(key)

    def set(self, key, value):
        with self._lock:
            self._data[key] = value

    def remove(self, key):
        with self._lock:
            self._data.pop(key, None)

    def __contains__(self, key):
        with self._lock:
            return key in self._data
