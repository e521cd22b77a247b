"""Key/value storage collaborator.

The engine itself never persists anything.  ``Storage`` is the interface the
surrounding application codes against; ``SqliteStorage`` is the reference
adapter used by the HTTP service.
"""
from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path

SCHEMA = """
CREATE TABLE IF NOT EXISTS blobs (
    key TEXT PRIMARY KEY,
    value BLOB NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class Storage(ABC):
    @abstractmethod
    def get(self, key: str) -> bytes | None:
        ...

    @abstractmethod
    def put(self, key: str, value: bytes) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def list(self, prefix: str = "") -> list[str]:
        ...


def _escape_like(prefix: str) -> str:
    return prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqliteStorage(Storage):
    def __init__(self, db_path: Path | str):
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript(SCHEMA)
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    def get(self, key: str) -> bytes | None:
        row = self.conn.execute("SELECT value FROM blobs WHERE key = ?", (key,)).fetchone()
        return bytes(row[0]) if row else None

    def put(self, key: str, value: bytes) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO blobs (key, value, updated_at) VALUES (?, ?, ?)",
            (key, value, datetime.now(timezone.utc).isoformat()),
        )
        self.conn.commit()

    def delete(self, key: str) -> None:
        self.conn.execute("DELETE FROM blobs WHERE key = ?", (key,))
        self.conn.commit()

    def list(self, prefix: str = "") -> list[str]:
        rows = self.conn.execute(
            "SELECT key FROM blobs WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
            (_escape_like(prefix) + "%",),
        ).fetchall()
        return [row[0] for row in rows]
