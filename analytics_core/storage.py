"""
Durable storage primitives — key-value scalars and the record engine.

KeyValueStore: one small JSON document (session timestamps, install flags).
Rewritten atomically on every set.

FileRecordEngine: one JSON-lines file per record kind plus customer.json.
Append is a single line write; remove rewrites the file without the row.
Rows come back in insertion order (oldest first).

Every OS-level failure is raised as PersistenceError. Callers decide whether
that is fatal.
"""

import json
import os
import threading
from pathlib import Path

from .config import log
from .errors import NotFoundError, PersistenceError


def _atomic_write(path, text):
    tmp = path.with_name(path.name + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        f.write(text)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, path)


# ─── Key-value scalars ───────────────────────────────────────────

class KeyValueStore:
    """Durable scalar store backed by a JSON file."""

    def __init__(self, path):
        self._path = Path(path)
        self._lock = threading.Lock()

    def _read(self):
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            log.warning("State file %s is corrupt, starting empty: %s", self._path, e)
            return {}
        except OSError as e:
            raise PersistenceError(f"Cannot read {self._path}: {e}") from e
        return data if isinstance(data, dict) else {}

    def _set(self, key, value):
        with self._lock:
            data = self._read()
            data[key] = value
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                _atomic_write(self._path, json.dumps(data))
            except OSError as e:
                raise PersistenceError(f"Cannot write {self._path}: {e}") from e

    def get_double(self, key):
        with self._lock:
            value = self._read().get(key, 0.0)
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    def set_double(self, key, value):
        self._set(key, float(value))

    def get_bool(self, key):
        with self._lock:
            return bool(self._read().get(key, False))

    def set_bool(self, key, value):
        self._set(key, bool(value))


# ─── Record engine ───────────────────────────────────────────────

class FileRecordEngine:
    """Append-only JSON-lines files, one per record kind."""

    CUSTOMER_FILE = "customer.json"

    def __init__(self, directory):
        self._dir = Path(directory)
        self._lock = threading.RLock()
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create data directory {self._dir}: {e}") from e

    def _file(self, kind):
        return self._dir / f"{kind}.jsonl"

    def append(self, kind, row):
        line = (json.dumps(row) + "\n").encode("utf-8")
        with self._lock:
            try:
                with open(self._file(kind), "a+b") as f:
                    # A crash mid-append leaves a line without its newline;
                    # close it off so the new row starts on its own line.
                    if f.seek(0, os.SEEK_END) > 0:
                        f.seek(-1, os.SEEK_END)
                        if f.read(1) != b"\n":
                            log.warning("Closing off a torn %s row before appending", kind)
                            line = b"\n" + line
                    f.write(line)
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                raise PersistenceError(f"Cannot append to {kind}: {e}") from e

    def fetch_all(self, kind):
        path = self._file(kind)
        with self._lock:
            if not path.exists():
                return []
            try:
                lines = path.read_text(encoding="utf-8").split("\n")
            except OSError as e:
                raise PersistenceError(f"Cannot read {kind}: {e}") from e

        rows = []
        for line in lines:
            if not line.strip():
                continue
            try:
                rows.append(json.loads(line))
            except json.JSONDecodeError:
                # A torn final line from a crash mid-append; the rest is intact.
                log.warning("Skipping unreadable %s row: %.80s", kind, line)
        return rows

    def remove(self, kind, record_id):
        path = self._file(kind)
        with self._lock:
            rows = self.fetch_all(kind)
            kept = [row for row in rows if row.get("id") != record_id]
            if len(kept) == len(rows):
                raise NotFoundError(f"No {kind} record with id {record_id}")
            try:
                if kept:
                    _atomic_write(path, "".join(json.dumps(row) + "\n" for row in kept))
                else:
                    path.unlink(missing_ok=True)
            except OSError as e:
                raise PersistenceError(f"Cannot rewrite {kind}: {e}") from e

    def load_customer(self):
        path = self._dir / self.CUSTOMER_FILE
        with self._lock:
            if not path.exists():
                return None
            try:
                return json.loads(path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as e:
                log.warning("Customer file is corrupt, a new customer will be created: %s", e)
                return None
            except OSError as e:
                raise PersistenceError(f"Cannot read customer: {e}") from e

    def save_customer(self, row):
        with self._lock:
            try:
                _atomic_write(self._dir / self.CUSTOMER_FILE, json.dumps(row))
            except OSError as e:
                raise PersistenceError(f"Cannot write customer: {e}") from e
