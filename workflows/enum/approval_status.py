"""Per-application status of one workflow step."""
from __future__ import annotations

from enum import Enum
from typing import Optional


class StepApprovalStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    @property
    def is_decided(self) -> bool:
        return self in (StepApprovalStatus.APPROVED, StepApprovalStatus.REJECTED)

    @classmethod
    def parse(cls, value: "StepApprovalStatus | str | None") -> Optional["StepApprovalStatus"]:
        """Lenient lookup; ``None`` for anything that is not a known status."""
        if isinstance(value, StepApprovalStatus):
            return value
        raw = str(value or "").strip().upper()
        return cls.__members__.get(raw)
