"""Workflow step records.

``WorkflowStep`` is the canonical, immutable representation of one gate in an
approval pipeline. Every change produces a new instance; the editing graph is
always derived from these records, never the other way round.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable, Optional, Tuple

from workflows.enum.dependency_type import DependencyType
from workflows.enum.target_audience import TargetAudience
from workflows.enum.workflow_phase import WorkflowPhase
from workflows.models.step_scope import StepScope

DEFAULT_COLOR = "#3b82f6"


def normalize_depends_on(
    key: str,
    dependency_type: DependencyType,
    depends_on: Iterable[str] | None,
) -> Tuple[str, ...]:
    """
    Return the cleaned dependency tuple for a step.

    - NONE always yields an empty tuple (invalid combination is normalized,
      not rejected).
    - Blank entries and self references are dropped.
    - Duplicates are removed, first occurrence wins.
    """
    if dependency_type is DependencyType.NONE:
        return ()
    seen: list[str] = []
    for raw in depends_on or ():
        dep = str(raw).strip()
        if not dep or dep == key or dep in seen:
            continue
        seen.append(dep)
    return tuple(seen)


@dataclass(frozen=True, slots=True)
class WorkflowStep:
    """One named gate in an accreditation approval pipeline."""

    id: int
    key: str
    name: str
    required_role: str
    form_id: Optional[int] = None
    target_audience: TargetAudience = TargetAudience.LOCAL
    is_exit_step: bool = False
    dependency_type: DependencyType = DependencyType.ANY
    depends_on: Tuple[str, ...] = ()
    display_order: int = 0
    email_step: bool = False
    is_active: bool = True
    description: str = ""
    color: Optional[str] = DEFAULT_COLOR
    icon: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def scope(self) -> StepScope:
        return StepScope(self.form_id, self.target_audience, self.phase)

    @property
    def phase(self) -> WorkflowPhase:
        return WorkflowPhase.from_exit_flag(self.is_exit_step)

    @property
    def is_placed(self) -> bool:
        return self.display_order > 0

    def with_changes(self, **changes) -> "WorkflowStep":
        return replace(self, **changes)


@dataclass(frozen=True)
class NewStepFields:
    """Fields accepted when creating a step.

    A step is always born unplaced (``display_order = 0``); placement happens
    through a saved flow.
    """

    key: str
    name: str
    required_role: str
    form_id: Optional[int] = None
    target_audience: TargetAudience = TargetAudience.LOCAL
    is_exit_step: bool = False
    dependency_type: DependencyType = DependencyType.ANY
    depends_on: Tuple[str, ...] = field(default_factory=tuple)
    email_step: bool = False
    is_active: bool = True
    description: str = ""
    color: Optional[str] = DEFAULT_COLOR
    icon: Optional[str] = None

    @property
    def scope(self) -> StepScope:
        return StepScope(self.form_id, self.target_audience, WorkflowPhase.from_exit_flag(self.is_exit_step))
