"""A small bucketed key-value store on top of SQLite."""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Optional


class Store:
    """Byte keys and values grouped in named buckets, kept in one file."""

    def __init__(self, path: "str | Path"):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(self.path), check_same_thread=False)
        with self._lock, self._conn:
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS entries ("
                "bucket TEXT NOT NULL, key BLOB NOT NULL, value BLOB NOT NULL, "
                "PRIMARY KEY (bucket, key))"
            )

    def get(self, bucket: str, key: bytes) -> Optional[bytes]:
        """The value under ``key``, or None."""
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM entries WHERE bucket = ? AND key = ?", (bucket, bytes(key))
            ).fetchone()
        return None if row is None else bytes(row[0])

    def put(self, bucket: str, key: bytes, value: bytes) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO entries (bucket, key, value) VALUES (?, ?, ?)",
                (bucket, bytes(key), bytes(value)),
            )

    def delete(self, bucket: str, key: bytes) -> None:
        """Remove ``key``; missing keys are ignored."""
        with self._lock, self._conn:
            self._conn.execute(
                "DELETE FROM entries WHERE bucket = ? AND key = ?", (bucket, bytes(key))
            )

    def items(self, bucket: str) -> list[tuple[bytes, bytes]]:
        """All pairs of a bucket in ascending key order."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT key, value FROM entries WHERE bucket = ? ORDER BY key", (bucket,)
            ).fetchall()
        return [(bytes(key), bytes(value)) for key, value in rows]

    def drop_bucket(self, bucket: str) -> None:
        """Remove every entry of a bucket."""
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM entries WHERE bucket = ?", (bucket,))

    def close(self) -> None:
        with self._lock:
            self._conn.close()