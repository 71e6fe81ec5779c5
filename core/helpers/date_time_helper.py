"""
date_time_helper.py

Helpers for timestamps written to the database and the operator log.

All values are stored as UTC ISO8601 strings; conversion for display is left
to the surrounding screens.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now_iso() -> str:
    """
    Returns the current UTC time as an ISO8601 string (YYYY-MM-DDTHH:MM:SS+00:00).
    Used for logging and DB storage.
    """
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def parse_utc_iso(value: str | datetime) -> datetime:
    """
    Parses an ISO8601 string into an aware UTC datetime.

    Naive values are assumed to be UTC already.
    """
    dt = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
