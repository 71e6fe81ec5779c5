"""Applicant audience a workflow applies to."""
from __future__ import annotations

from enum import Enum


class TargetAudience(str, Enum):
    LOCAL = "LOCAL"
    INTERNATIONAL = "INTERNATIONAL"

    @classmethod
    def parse(cls, value: "TargetAudience | str | None") -> "TargetAudience":
        if isinstance(value, TargetAudience):
            return value
        raw = str(value or "").strip().upper()
        try:
            return cls[raw]
        except KeyError:
            raise ValueError(f"Unknown target audience: {value!r}") from None
