"""Scope filtering (no IO).

Selects the steps relevant to one (form, audience, phase) view. A global step
(``form_id is None``) is visible in every form view of its audience and phase;
it still belongs to the global scope when written back.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from workflows.enum.target_audience import TargetAudience
from workflows.enum.workflow_phase import WorkflowPhase
from workflows.models.step_scope import StepScope
from workflows.models.workflow_step import WorkflowStep


def filter_steps(
    steps: Iterable[WorkflowStep],
    form_id: Optional[int],
    audience: TargetAudience | str,
    phase: WorkflowPhase | str,
) -> List[WorkflowStep]:
    """
    Return the steps visible in the given view, in input order.

    Keeps a step iff its form is global or equal to ``form_id``, its audience
    matches and its exit flag matches the phase.
    """
    return steps_in_view(steps, StepScope.of(form_id, audience, phase))


def steps_in_view(steps: Iterable[WorkflowStep], scope: StepScope) -> List[WorkflowStep]:
    return [s for s in steps if scope.contains(s)]


def steps_owned_by(steps: Iterable[WorkflowStep], scope: StepScope) -> List[WorkflowStep]:
    """Steps stored under exactly this scope (globals excluded from form scopes)."""
    return [s for s in steps if scope.owns(s)]


def index_by_key(steps: Iterable[WorkflowStep]) -> Dict[str, WorkflowStep]:
    """Key lookup map for one scoped query; the first step wins on a clash."""
    index: Dict[str, WorkflowStep] = {}
    for step in steps:
        index.setdefault(step.key, step)
    return index
