"""Exceptions of the workflows feature."""

from workflows.exceptions.errors import (
    DuplicateKeyError,
    SaveError,
    ScopeViolationError,
    StepNotFoundError,
    StepReferencedError,
    ValidationError,
    WorkflowsError,
)

__all__ = [
    "DuplicateKeyError",
    "SaveError",
    "ScopeViolationError",
    "StepNotFoundError",
    "StepReferencedError",
    "ValidationError",
    "WorkflowsError",
]
