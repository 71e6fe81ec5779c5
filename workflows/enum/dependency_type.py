"""Dependency rule of a workflow step."""
from __future__ import annotations

from enum import Enum


class DependencyType(str, Enum):
    """How the declared dependencies of a step gate it."""

    NONE = "NONE"   # entry step, no prerequisites
    ALL = "ALL"     # every dependency must be approved
    ANY = "ANY"     # one approved dependency suffices

    @classmethod
    def parse(cls, value: "DependencyType | str | None") -> "DependencyType":
        if isinstance(value, DependencyType):
            return value
        raw = str(value or "").strip().upper()
        try:
            return cls[raw]
        except KeyError:
            raise ValueError(f"Unknown dependency type: {value!r}") from None
