"""
SSI Protocol v0.1 - Keyed Stores

Holder state lives in simple key-value tables of JSON documents. The
protocol logic only needs atomic per-key get, put and compare-and-swap;
whether the table is kept in memory or flushed to SQLite is a concern of
the adapter.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import json
import re
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union


def _encode(value: dict) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


class KeyValueStore(ABC):
    """A table of JSON documents keyed by string, iterated in insertion order."""

    @abstractmethod
    def get(self, key: str) -> Optional[dict]:
        ...

    @abstractmethod
    def put(self, key: str, value: dict) -> None:
        """Insert or overwrite the value at key."""

    @abstractmethod
    def compare_and_swap(self, key: str, expected: Optional[dict], new: dict) -> bool:
        """
        Atomically replace the value at key if it still equals expected.

        expected=None means "only if absent". Returns True on success.
        """

    @abstractmethod
    def items(self) -> Iterator[tuple[str, dict]]:
        ...

    def values(self) -> Iterator[dict]:
        for _, value in self.items():
            yield value

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class MemoryStore(KeyValueStore):
    """In-process store; values are copied in and out."""

    def __init__(self):
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[dict]:
        with self._lock:
            encoded = self._data.get(key)
        return json.loads(encoded) if encoded is not None else None

    def put(self, key: str, value: dict) -> None:
        encoded = _encode(value)
        with self._lock:
            self._data[key] = encoded

    def compare_and_swap(self, key: str, expected: Optional[dict], new: dict) -> bool:
        expected_encoded = _encode(expected) if expected is not None else None
        new_encoded = _encode(new)
        with self._lock:
            if self._data.get(key) != expected_encoded:
                return False
            self._data[key] = new_encoded
            return True

    def items(self) -> Iterator[tuple[str, dict]]:
        with self._lock:
            snapshot = list(self._data.items())
        for key, encoded in snapshot:
            yield key, json.loads(encoded)


_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SQLiteStore(KeyValueStore):
    """
    Store persisted to an SQLite table.

    Several stores may share one database file, each under its own table.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:", table: str = "documents"):
        if not _TABLE_NAME.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self.db_path = str(db_path)
        self.table = table
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._init_db()

    def _init_db(self):
        with self._transaction():
            self._conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    key TEXT UNIQUE NOT NULL,
                    value TEXT NOT NULL
                )
            """)

    @contextmanager
    def _transaction(self):
        """Context manager for database transactions."""
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def close(self):
        with self._lock:
            self._conn.close()

    def get(self, key: str) -> Optional[dict]:
        with self._lock:
            row = self._conn.execute(
                f"SELECT value FROM {self.table} WHERE key = ?", (key,)
            ).fetchone()
        return json.loads(row[0]) if row else None

    def put(self, key: str, value: dict) -> None:
        with self._transaction():
            self._conn.execute(
                f"""
                INSERT INTO {self.table} (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, _encode(value)),
            )

    def compare_and_swap(self, key: str, expected: Optional[dict], new: dict) -> bool:
        with self._transaction():
            if expected is None:
                cursor = self._conn.execute(
                    f"INSERT OR IGNORE INTO {self.table} (key, value) VALUES (?, ?)",
                    (key, _encode(new)),
                )
            else:
                cursor = self._conn.execute(
                    f"UPDATE {self.table} SET value = ? WHERE key = ? AND value = ?",
                    (_encode(new), key, _encode(expected)),
                )
            return cursor.rowcount == 1

    def items(self) -> Iterator[tuple[str, dict]]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT key, value FROM {self.table} ORDER BY seq"
            ).fetchall()
        for key, encoded in rows:
            yield key, json.loads(encoded)
