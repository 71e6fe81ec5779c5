"""
core/common/db_interface.py
===========================

Shared helpers for SQLite-backed modules.
"""
from __future__ import annotations

from pathlib import Path
import sqlite3

MEMORY_DB = ":memory:"


def is_memory_path(db_path: str | Path) -> bool:
    return str(db_path) == MEMORY_DB


def create_sqlite_connection(
    db_path: str | Path,
    *,
    check_same_thread: bool = False,
    foreign_keys: bool = False,
) -> sqlite3.Connection:
    """Create a sqlite3 connection with common defaults.

    File databases get their parent directory created on demand; the special
    path ``:memory:`` is passed through unchanged.
    """
    if not is_memory_path(db_path):
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), check_same_thread=check_same_thread)
    conn.row_factory = sqlite3.Row
    if foreign_keys:
        conn.execute("PRAGMA foreign_keys = ON")
    return conn
