"""
log_entry.py

Dataclass for one operator log entry.

• from_dict()  – builds the object from a DB row dict
• as_dict()    – plain dict with an ISO UTC timestamp (export / display)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from core.helpers.date_time_helper import parse_utc_iso


@dataclass
class LogEntry:
    id: Optional[int]
    timestamp: datetime          # always UTC
    log_level: str
    user_id: Optional[int]
    username: Optional[str]
    feature: str
    event: str
    reference_id: Optional[str]
    message: Optional[str]

    # -------------------- Factory ------------------------------------ #
    @classmethod
    def from_dict(cls, data: dict) -> "LogEntry":
        """Builds a LogEntry from a DB row dict."""
        return cls(
            id=data.get("id"),
            timestamp=parse_utc_iso(data["timestamp"]),
            log_level=data.get("log_level", "INFO"),
            user_id=data.get("user_id"),
            username=data.get("username"),
            feature=data.get("feature", ""),
            event=data.get("event", ""),
            reference_id=data.get("reference_id"),
            message=data.get("message"),
        )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp_utc": self.timestamp.replace(microsecond=0).isoformat(),
            "log_level": self.log_level,
            "user_id": self.user_id,
            "username": self.username,
            "feature": self.feature,
            "event": self.event,
            "reference_id": self.reference_id,
            "message": self.message,
        }
