"""Persistent key-value storage for the cache and the offline queue.

This module provides:
- KeyValueStore: The async get/set/delete contract
- SQLiteKeyValueStore: Durable store backed by a local SQLite database
- MemoryKeyValueStore: Non-durable store for tests and ephemeral clients

Values must be JSON-serializable. The SQLite store commits every write
immediately (autocommit, WAL mode) so queued operations survive a crash.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Async key-value store contract."""

    async def get(self, key: str) -> Any | None:
        """Return the stored value, or None if the key is absent."""
        ...

    async def set(self, key: str, value: Any) -> None:
        """Store a value, replacing any previous one."""
        ...

    async def delete(self, key: str) -> None:
        """Remove a key. Removing a missing key is not an error."""
        ...


class MemoryKeyValueStore:
    """In-memory KeyValueStore.

    Values are deep-copied on the way in and out, like a real store would
    serialize them.
    """

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    async def get(self, key: str) -> Any | None:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        """List stored keys."""
        return list(self._data)


class SQLiteKeyValueStore:
    """SQLite-backed KeyValueStore.

    Database calls run in a worker thread so the event loop never blocks on
    disk I/O.
    """

    def __init__(self, db_path: Path) -> None:
        """Open (or create) the store.

        Args:
            db_path: Path to SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Lock for thread-safe database access
        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        logger.debug("Opened key-value store at %s", self._db_path)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    async def get(self, key: str) -> Any | None:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._set, key, json.dumps(value))

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete, key)

    def _get(self, key: str) -> Any | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM kv_store WHERE key = ?",
                (key,),
            ).fetchone()
        return json.loads(row[0]) if row else None

    def _set(self, key: str, value_json: str) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
                (key, value_json),
            )

    def _delete(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
