"""
Key-value store collaborators.

The record store only needs flat ``read(key) -> bytes`` / ``write(key, bytes)``
plus an availability probe. Conditional writes and key scans are optional
capabilities; callers check for them with ``supports_cas`` / ``supports_scan``.
"""

import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Generator, List


class KVStore(ABC):
    """Abstract interface for a string-keyed blob store."""

    supports_cas = False
    supports_scan = False

    @abstractmethod
    def read(self, key: str) -> bytes:
        """Return the bytes stored at ``key``, or ``b""`` when missing."""
        pass

    @abstractmethod
    def write(self, key: str, data: bytes) -> None:
        """Store ``data`` at ``key``, replacing any previous value."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Availability probe."""
        pass

    def compare_and_swap(self, key: str, expected: bytes, data: bytes) -> bool:
        """Write ``data`` only if ``key`` currently holds ``expected`` (``b""`` = missing)."""
        raise NotImplementedError(f"{self.__class__.__name__} does not support conditional writes")

    def scan(self, prefix: str) -> List[str]:
        """List keys starting with ``prefix``."""
        raise NotImplementedError(f"{self.__class__.__name__} does not support key scans")


class InMemoryKVStore(KVStore):
    """Dict-backed store for tests and local runs."""

    supports_cas = True
    supports_scan = True

    def __init__(self, available: bool = True):
        self._data: Dict[str, bytes] = {}
        self._lock = threading.Lock()
        self.available = available

    def read(self, key: str) -> bytes:
        with self._lock:
            return self._data.get(key, b"")

    def write(self, key: str, data: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(data)

    def is_available(self) -> bool:
        return self.available

    def compare_and_swap(self, key: str, expected: bytes, data: bytes) -> bool:
        with self._lock:
            if self._data.get(key, b"") != expected:
                return False
            self._data[key] = bytes(data)
            return True

    def scan(self, prefix: str) -> List[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))


class SQLiteKVStore(KVStore):
    """Single-table SQLite blob store."""

    supports_cas = True
    supports_scan = True

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.init_db()

    @contextmanager
    def get_db(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a SQLite database connection."""
        conn = sqlite3.connect(self.db_path)
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self):
        """Initialize the database with the kv table."""
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')
            conn.commit()

    def read(self, key: str) -> bytes:
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT value FROM kv WHERE key = ?", (key,))
            row = cursor.fetchone()
            return bytes(row[0]) if row else b""

    def write(self, key: str, data: bytes) -> None:
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO kv (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP",
                (key, sqlite3.Binary(data))
            )
            conn.commit()

    def is_available(self) -> bool:
        try:
            with self.get_db() as conn:
                conn.execute("SELECT 1 FROM kv LIMIT 1")
            return True
        except sqlite3.Error:
            return False

    def compare_and_swap(self, key: str, expected: bytes, data: bytes) -> bool:
        with self.get_db() as conn:
            cursor = conn.cursor()
            if expected:
                cursor.execute(
                    "UPDATE kv SET value = ?, updated_at = CURRENT_TIMESTAMP WHERE key = ? AND value = ?",
                    (sqlite3.Binary(data), key, sqlite3.Binary(expected))
                )
            else:
                cursor.execute(
                    "INSERT OR IGNORE INTO kv (key, value) VALUES (?, ?)",
                    (key, sqlite3.Binary(data))
                )
            conn.commit()
            return cursor.rowcount == 1

    def scan(self, prefix: str) -> List[str]:
        with self.get_db() as conn:
            cursor = conn.cursor()
            # substr comparison avoids LIKE wildcards in the prefix ("_" matches anything)
            cursor.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix)
            )
            return [row[0] for row in cursor.fetchall()]
