"""Workflows feature exceptions."""
from __future__ import annotations

from typing import Sequence


class WorkflowsError(Exception):
    """Base exception for the workflows feature."""


class ValidationError(WorkflowsError):
    """Raised before any persistence call when input violates a step rule."""


class DuplicateKeyError(ValidationError):
    """Raised when a step key is already taken."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Step key '{key}' is already in use")
        self.key = key


class StepNotFoundError(WorkflowsError):
    """Raised when a step id does not exist in the repository."""

    def __init__(self, step_id: int) -> None:
        super().__init__(f"Workflow step {step_id} does not exist")
        self.step_id = step_id


class StepReferencedError(WorkflowsError):
    """Raised when deleting a step other steps still depend on."""

    def __init__(self, key: str, referenced_by: Sequence[str]) -> None:
        count = len(referenced_by)
        noun = "step" if count == 1 else "steps"
        super().__init__(
            f"Step '{key}' is referenced by {count} {noun}: {', '.join(referenced_by)}"
        )
        self.key = key
        self.referenced_by = tuple(referenced_by)


class ScopeViolationError(WorkflowsError):
    """Raised when an edit session touches a step outside its scope."""


class SaveError(WorkflowsError):
    """Raised when persisting a patch set failed; nothing was written."""
