"""Phase of an accreditation a workflow belongs to."""
from __future__ import annotations

from enum import Enum


class WorkflowPhase(str, Enum):
    """ENTRY steps run on arrival, EXIT steps on departure (``is_exit_step``)."""

    ENTRY = "ENTRY"
    EXIT = "EXIT"

    @classmethod
    def from_exit_flag(cls, is_exit_step: bool) -> "WorkflowPhase":
        return cls.EXIT if is_exit_step else cls.ENTRY

    @property
    def is_exit(self) -> bool:
        return self is WorkflowPhase.EXIT
