"""Adapters for external systems (database)."""

from workflows.adapters.database_adapter import DatabaseAdapter
from workflows.adapters.sqlite_adapter import SQLiteAdapter

__all__ = [
    "DatabaseAdapter",
    "SQLiteAdapter",
]
