"""Domain records of the workflows feature."""

from workflows.models.step_scope import StepScope
from workflows.models.workflow_step import NewStepFields, WorkflowStep, normalize_depends_on

__all__ = [
    "StepScope",
    "NewStepFields",
    "WorkflowStep",
    "normalize_depends_on",
]
