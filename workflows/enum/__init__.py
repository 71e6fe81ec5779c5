"""Enumerations for the workflows feature."""

from workflows.enum.approval_status import StepApprovalStatus
from workflows.enum.dependency_type import DependencyType
from workflows.enum.target_audience import TargetAudience
from workflows.enum.workflow_phase import WorkflowPhase

__all__ = [
    "StepApprovalStatus",
    "DependencyType",
    "TargetAudience",
    "WorkflowPhase",
]
