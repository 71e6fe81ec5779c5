"""
core/logging/logic/logger.py
============================

Thread-safe operator log with a SQLite backend.

Operator-facing events (warnings about dangling dependencies, saved flows,
rejected deletions, …) end up here so they can be listed by a log screen.
Diagnostics for developers keep using the standard ``logging`` module.

- Reuses a single database connection instead of creating new ones per operation
- Connection is shared via check_same_thread=False and explicit locking
"""

from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from core.common.db_interface import create_sqlite_connection
from core.logging.models.log_entry import LogEntry


class Logger:
    """Thread-safe operator log writing into a ``logs`` table."""

    def __init__(self, db_path: str | Path) -> None:
        self._lock = threading.RLock()
        self.db_path = db_path
        self.entries: list[LogEntry] = []
        self._conn: sqlite3.Connection | None = None
        self._ensure_db()

    # ------------------------------------------------------------------ #
    #  Connection management (reuse single connection)                   #
    # ------------------------------------------------------------------ #
    def _get_connection(self) -> sqlite3.Connection:
        """Get or create a reusable database connection (thread-safe)."""
        with self._lock:
            if self._conn is None:
                self._conn = create_sqlite_connection(self.db_path, check_same_thread=False)
            return self._conn

    def close(self) -> None:
        """Close the database connection and release resources."""
        with self._lock:
            if self._conn is not None:
                try:
                    self._conn.close()
                finally:
                    self._conn = None

    # ------------------------------------------------------------------ #
    #  Public API: log                                                   #
    # ------------------------------------------------------------------ #
    def log(
        self,
        feature: str,
        event: str,
        *,
        user_id: Optional[int] = None,
        username: Optional[str] = None,
        level: str = "INFO",
        reference_id: Optional[str] = None,
        message: Optional[str] = None,
    ) -> LogEntry:
        """Persists one log entry and returns it."""
        entry = LogEntry(
            id=None,
            timestamp=datetime.now(timezone.utc),
            user_id=user_id,
            username=username or "unknown",
            feature=feature,
            event=event,
            reference_id=reference_id,
            message=message,
            log_level=level.upper(),
        )

        entry.id = self._insert_log(entry)
        self.entries.append(entry)
        return entry

    # ------------------------------------------------------------------ #
    #  Fetch / Query / Clear                                             #
    # ------------------------------------------------------------------ #
    def fetch_logs(self, limit: int = 100) -> List[LogEntry]:
        with self._lock:
            conn = self._get_connection()
            rows = conn.execute(
                "SELECT * FROM logs ORDER BY timestamp DESC, id DESC LIMIT ?", (limit,)
            ).fetchall()
            return [LogEntry.from_dict(dict(row)) for row in rows]

    def query_logs(
        self,
        *,
        user_id: Optional[int] = None,
        username: Optional[str] = None,
        feature: Optional[str] = None,
        event: Optional[str] = None,
        reference_id: Optional[str] = None,
        level: Optional[str] = None,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        limit: int = 1_000,
    ) -> List[LogEntry]:
        with self._lock:
            conn = self._get_connection()

            query = "SELECT * FROM logs WHERE 1=1"
            params: list[object] = []

            if user_id is not None:
                query += " AND user_id = ?"
                params.append(user_id)
            if username is not None:
                query += " AND username = ?"
                params.append(username)
            if feature is not None:
                query += " AND feature = ?"
                params.append(feature)
            if event is not None:
                query += " AND event = ?"
                params.append(event)
            if reference_id is not None:
                query += " AND reference_id = ?"
                params.append(reference_id)
            if level is not None:
                query += " AND log_level = ?"
                params.append(level.upper())
            if start_time is not None:
                query += " AND timestamp >= ?"
                params.append(start_time)
            if end_time is not None:
                query += " AND timestamp <= ?"
                params.append(end_time)

            query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
            params.append(limit)

            rows = conn.execute(query, params).fetchall()
            return [LogEntry.from_dict(dict(row)) for row in rows]

    def clear_logs(self) -> None:
        with self._lock:
            conn = self._get_connection()
            conn.execute("DELETE FROM logs")
            conn.commit()
            self.entries.clear()

    # ------------------------------------------------------------------ #
    #  Internal helpers                                                  #
    # ------------------------------------------------------------------ #
    def _ensure_db(self) -> None:
        """Initialize the database schema."""
        with self._lock:
            conn = self._get_connection()
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    user_id INTEGER,
                    username TEXT,
                    feature TEXT NOT NULL,
                    event TEXT NOT NULL,
                    reference_id TEXT,
                    message TEXT,
                    log_level TEXT NOT NULL DEFAULT 'INFO'
                )
                """
            )
            conn.commit()

    def _insert_log(self, entry: LogEntry) -> int:
        with self._lock:
            conn = self._get_connection()
            cur = conn.execute(
                """
                INSERT INTO logs
                    (timestamp, user_id, username, feature, event,
                     reference_id, message, log_level)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.timestamp.isoformat(),
                    entry.user_id,
                    entry.username,
                    entry.feature,
                    entry.event,
                    entry.reference_id,
                    entry.message,
                    entry.log_level,
                ),
            )
            conn.commit()
            return int(cur.lastrowid)


# --------------------------------------------------------------------------- #
#  Shared instance (created on first use from the configured path)           #
# --------------------------------------------------------------------------- #
_shared: Logger | None = None
_shared_lock = threading.Lock()


def get_logger() -> Logger:
    global _shared
    if _shared is None:
        with _shared_lock:
            if _shared is None:
                from core.config.config_service import config_service
                _shared = Logger(config_service.database.logging)
    return _shared
