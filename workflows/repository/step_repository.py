"""Step repository protocol (interface).

Defines the contract for workflow step data access without implementation
details. Implementations persist records only; validation, normalization and
cross-step rules live in ``StepService``.
"""

from __future__ import annotations
from contextlib import AbstractContextManager
from typing import Iterable, List, Optional, Protocol

from workflows.dto.step_patch import StepPatch
from workflows.models.workflow_step import NewStepFields, WorkflowStep


class StepRepository(Protocol):
    """Protocol for workflow step data access."""

    # ===== Query Operations =====

    def list_steps(self) -> List[WorkflowStep]:
        """
        List every step, ordered by id.

        Returns:
            List of WorkflowStep
        """
        ...

    def get_step(self, step_id: int) -> WorkflowStep:
        """
        Get single step by id.

        Raises:
            StepNotFoundError: unknown id
        """
        ...

    def find_by_key(self, key: str) -> Optional[WorkflowStep]:
        """Get single step by key, None if absent."""
        ...

    # ===== Write Operations =====

    def create_step(self, fields: NewStepFields) -> WorkflowStep:
        """
        Persist a new, unplaced step.

        Returns:
            Created WorkflowStep with its assigned id
        """
        ...

    def update_step(self, step_id: int, patch: StepPatch) -> WorkflowStep:
        """
        Apply the set fields of ``patch``.

        Returns:
            Updated WorkflowStep

        Raises:
            StepNotFoundError: unknown id
        """
        ...

    def delete_step(self, step_id: int) -> None:
        """
        Physically delete a step.

        Raises:
            StepNotFoundError: unknown id
        """
        ...

    def bulk_update_steps(self, patches: Iterable[StepPatch]) -> None:
        """
        Apply all patches as one unit: either every patch is persisted or none.
        """
        ...

    # ===== Transactions =====

    def transaction(self) -> AbstractContextManager[None]:
        """Group several write calls into one atomic unit."""
        ...
