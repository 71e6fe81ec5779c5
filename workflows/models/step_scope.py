"""Scope of a workflow: the (form, audience, phase) triple."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from workflows.enum.target_audience import TargetAudience
from workflows.enum.workflow_phase import WorkflowPhase

if TYPE_CHECKING:
    from workflows.models.workflow_step import WorkflowStep


@dataclass(frozen=True, slots=True)
class StepScope:
    """
    Isolates one independent workflow from another.

    Two membership rules exist:

    owns(step)
        Exact match of all three fields. This is the scope a step is stored
        and written back under, and the unit of email-step exclusivity.
    contains(step)
        View visibility. A global step (``form_id is None``) is visible in
        every form view of the same audience and phase.
    """

    form_id: Optional[int]
    target_audience: TargetAudience
    phase: WorkflowPhase

    @classmethod
    def of(
        cls,
        form_id: Optional[int],
        audience: TargetAudience | str,
        phase: WorkflowPhase | str,
    ) -> "StepScope":
        return cls(
            form_id=form_id,
            target_audience=TargetAudience.parse(audience),
            phase=WorkflowPhase(phase),
        )

    @property
    def is_global(self) -> bool:
        return self.form_id is None

    @property
    def is_exit_step(self) -> bool:
        return self.phase.is_exit

    def owns(self, step: "WorkflowStep") -> bool:
        return (
            step.form_id == self.form_id
            and step.target_audience == self.target_audience
            and step.is_exit_step == self.is_exit_step
        )

    def contains(self, step: "WorkflowStep") -> bool:
        return (
            (step.form_id is None or step.form_id == self.form_id)
            and step.target_audience == self.target_audience
            and step.is_exit_step == self.is_exit_step
        )

    def label(self) -> str:
        form = "global" if self.form_id is None else f"form {self.form_id}"
        return f"{form}/{self.target_audience.value}/{self.phase.value}"
