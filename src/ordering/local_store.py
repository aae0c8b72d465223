"""
SQLite-backed key -> string store for persisted client state.
Every key is independent; writes are last-write-wins.
"""
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import config


class LocalStore:
    """Persisted key/value store (settings, history blob, session menu cache)."""

    def __init__(self, db_path: str = None):
        self.db_path = db_path or config.LOCAL_STORE_PATH
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        """Get a new connection (sqlite3 connections are not thread-safe)."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_db(self):
        conn = self._get_conn()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS local_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT value FROM local_state WHERE key = ?", (key,)).fetchone()
            return row["value"] if row else default
        finally:
            conn.close()

    def set(self, key: str, value: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """INSERT INTO local_state (key, value, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at""",
                (key, str(value), datetime.now(timezone.utc).isoformat())
            )
            conn.commit()
        finally:
            conn.close()

    def remove(self, key: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM local_state WHERE key = ?", (key,))
            conn.commit()
        finally:
            conn.close()
