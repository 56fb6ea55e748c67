"""
Durable key-value storage.

The chat state lives in four string records (allChats, activeChat,
agentSettings, agentMemories), so all the core needs is get/set/delete on
strings. SQLite backs it for real use: single portable file, one row per key.
"""

from __future__ import annotations

import abc
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


class KeyValueStore(abc.ABC):
    """String key to string value store."""

    @abc.abstractmethod
    def get(self, key: str) -> str | None:
        ...

    @abc.abstractmethod
    def set(self, key: str, value: str):
        ...

    @abc.abstractmethod
    def delete(self, key: str):
        ...

    def size(self, *keys: str) -> int:
        """Characters used by the given records."""
        return sum(len(self.get(k) or "") for k in keys)


class MemoryKVStore(KeyValueStore):
    """Process-local store. Used by tests and throwaway sessions."""

    def __init__(self, data: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(data or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str):
        self.data[key] = value

    def delete(self, key: str):
        self.data.pop(key, None)


class SQLiteKVStore(KeyValueStore):
    """SQLite-backed key-value store."""

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(CREATE_TABLES)
        logger.info("Key-value store initialized at %s", self.db_path)

    @contextmanager
    def _connect(self):
        conn = sqlite3.connect(str(self.db_path))
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def get(self, key: str) -> str | None:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str):
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO kv (key, value, updated_at) VALUES (?, ?, datetime('now'))
                   ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                                  updated_at = excluded.updated_at""",
                (key, value),
            )
        logger.debug("Stored %s (%d chars)", key, len(value))

    def delete(self, key: str):
        with self._connect() as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))
