"""
===============================================================================
Dependency gate evaluation (no IO)
-------------------------------------------------------------------------------
Purpose:
    Decide whether a workflow step of an application can be acted on, given
    the approval status of the steps it depends on.

Rules:
    - Unplaced steps (display_order 0) take part in no flow: never actionable
      and never a satisfied prerequisite.
    - NONE  -> always actionable (role/scope checks are the caller's job).
    - ALL   -> every declared dependency is APPROVED.
    - ANY   -> at least one declared dependency is APPROVED.
    - Unknown keys, missing statuses and NOT_STARTED count as unsatisfied;
      none of them raises.
    - REJECTED only blocks steps that list the rejected step directly.

Integration:
    Used at application-processing time, independently of graph editing.
===============================================================================
"""
from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Mapping, Optional, Union

from workflows.enum.approval_status import StepApprovalStatus
from workflows.enum.dependency_type import DependencyType
from workflows.models.step_scope import StepScope
from workflows.models.workflow_step import WorkflowStep

StatusLookup = Union[
    Mapping[str, StepApprovalStatus],
    Callable[[str], Optional[StepApprovalStatus]],
]


def _resolver(status_of: StatusLookup) -> Callable[[str], Optional[StepApprovalStatus]]:
    if callable(status_of) and not isinstance(status_of, Mapping):
        return status_of
    return lambda key: status_of.get(key)  # type: ignore[union-attr]


class DependencyGateEvaluator:
    """
    Gate rules over one known step set.

    Without a step set, every key that has a status counts as known; with a
    step set, a dependency must also resolve to a placed step of that set.
    """

    def __init__(self, steps: Optional[Iterable[WorkflowStep]] = None) -> None:
        self._placed: Optional[Dict[str, WorkflowStep]] = None
        if steps is not None:
            self._placed = {s.key: s for s in steps if s.is_placed}

    # -------- Single dependency -------------------------------------------- #
    def is_satisfied(self, key: str, status_of: StatusLookup) -> bool:
        if self._placed is not None and key not in self._placed:
            return False
        try:
            status = _resolver(status_of)(key)
        except KeyError:
            return False
        if status is None:
            return False
        return StepApprovalStatus.parse(status) is StepApprovalStatus.APPROVED

    # -------- Step gate ----------------------------------------------------- #
    def is_actionable(self, step: WorkflowStep, status_of: StatusLookup) -> bool:
        if not step.is_placed:
            return False
        if step.dependency_type is DependencyType.NONE:
            return True
        satisfied = [self.is_satisfied(key, status_of) for key in step.depends_on]
        if step.dependency_type is DependencyType.ALL:
            return all(satisfied)
        return any(satisfied)

    def unsatisfied_dependencies(self, step: WorkflowStep, status_of: StatusLookup) -> List[str]:
        """Keys of ``step.depends_on`` that are not approved (in declared order)."""
        if step.dependency_type is DependencyType.NONE:
            return []
        return [key for key in step.depends_on if not self.is_satisfied(key, status_of)]

    # -------- Work queue ---------------------------------------------------- #
    def actionable_steps(
        self,
        steps: Iterable[WorkflowStep],
        status_of: StatusLookup,
        *,
        role: Optional[str] = None,
        scope: Optional[StepScope] = None,
    ) -> List[WorkflowStep]:
        """
        Steps an officer can work on now, ordered by level then input order.

        A step qualifies when it is placed and active, its own status is not
        decided yet (neither APPROVED nor REJECTED), its gate is open and,
        if given, its required role and scope view match.
        """
        lookup = _resolver(status_of)
        wanted_role = role.strip().upper() if role else None
        result: List[WorkflowStep] = []
        for step in steps:
            if not step.is_active or not step.is_placed:
                continue
            if scope is not None and not scope.contains(step):
                continue
            if wanted_role and step.required_role.strip().upper() != wanted_role:
                continue
            try:
                own = lookup(step.key)
            except KeyError:
                own = None
            own = StepApprovalStatus.parse(own)
            if own is not None and own.is_decided:
                continue
            if self.is_actionable(step, status_of):
                result.append(step)
        return sorted(result, key=lambda s: s.display_order)


def is_actionable(step: WorkflowStep, status_of: StatusLookup) -> bool:
    """Gate check without a known step set."""
    return DependencyGateEvaluator().is_actionable(step, status_of)
