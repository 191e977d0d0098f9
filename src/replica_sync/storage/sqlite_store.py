"""SQLite local store for a durable on-device replica."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Any

from replica_sync.core.errors import LocalStoreError
from replica_sync.storage.base import LocalStore

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_entries (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
)
"""


class SQLiteLocalStore(LocalStore):
    """SQLite-backed key-value store.

    Good for a single process per database file. Data persists to disk and
    survives restarts. Errors from SQLite are raised as ``LocalStoreError``.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path).resolve() if str(db_path) != ":memory:" else None
        self._raw_path = str(db_path)
        self._conn: sqlite3.Connection | None = None

    @property
    def db_path(self) -> Path | None:
        return self._db_path

    def open(self) -> None:
        """Open the connection and create the schema if needed."""
        if self._conn is not None:
            return

        if self._db_path is not None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(self._db_path)
        else:
            target = self._raw_path

        try:
            self._conn = sqlite3.connect(target)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
            self._conn.execute(SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn = None
            raise LocalStoreError(f"Failed to open {target}: {e}") from e

        logger.debug("Opened local store at %s", target)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> SQLiteLocalStore:
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _ensure_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self.open()
        assert self._conn is not None
        return self._conn

    def get(self, key: str) -> str | None:
        conn = self._ensure_conn()
        try:
            row = conn.execute("SELECT value FROM kv_entries WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise LocalStoreError(f"Failed to read {key!r}: {e}") from e
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        conn = self._ensure_conn()
        try:
            with conn:
                conn.execute(
                    """INSERT INTO kv_entries (key, value) VALUES (?, ?)
                       ON CONFLICT(key) DO UPDATE SET
                           value = excluded.value,
                           updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now')""",
                    (key, value),
                )
        except sqlite3.Error as e:
            raise LocalStoreError(f"Failed to write {key!r}: {e}") from e

    def delete(self, key: str) -> None:
        conn = self._ensure_conn()
        try:
            with conn:
                conn.execute("DELETE FROM kv_entries WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise LocalStoreError(f"Failed to delete {key!r}: {e}") from e

    def keys(self) -> list[str]:
        conn = self._ensure_conn()
        rows = conn.execute("SELECT key FROM kv_entries ORDER BY key").fetchall()
        return [row[0] for row in rows]
