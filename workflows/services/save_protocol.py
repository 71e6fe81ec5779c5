"""Synchronization/save protocol (no IO).

Merges the edited, placed steps of one scope with the untouched steps of the
same scope into a single patch set. Steps outside the scope never show up in
the result, so a save in one (form, audience, phase) view cannot disturb the
order or dependencies of another.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Iterable, List, Optional, Sequence

from workflows.dto.graph import GraphEdge, GraphNode
from workflows.dto.step_patch import StepPatch
from workflows.enum.dependency_type import DependencyType
from workflows.exceptions.errors import ScopeViolationError, ValidationError
from workflows.models.step_scope import StepScope
from workflows.models.workflow_step import WorkflowStep
from workflows.services.layout.row_layout_engine import RowLayoutEngine
from workflows.services.scope_filter import steps_in_view


def reset_patch(step: WorkflowStep) -> StepPatch:
    """Patch taking a step off the canvas."""
    return StepPatch(
        step_id=step.id,
        display_order=0,
        depends_on=(),
        dependency_type=DependencyType.NONE,
    )


def _keep_hidden_dependencies(patch: StepPatch, step: WorkflowStep, hidden_keys: set[str]) -> StepPatch:
    """Carry over references to existing steps the current view cannot show."""
    kept = tuple(k for k in step.depends_on if k in hidden_keys and k not in patch.depends_on)
    if not kept:
        return patch
    dep_type = patch.dependency_type
    if dep_type is DependencyType.NONE:
        dep_type = DependencyType.ANY
    return replace(patch, depends_on=tuple(patch.depends_on) + kept, dependency_type=dep_type)


def prepare_save(
    nodes: Sequence[GraphNode],
    edges: Sequence[GraphEdge],
    all_steps: Iterable[WorkflowStep],
    scope: StepScope,
    engine: Optional[RowLayoutEngine] = None,
) -> List[StepPatch]:
    """
    Build the patch set for saving an edited graph.

    Returns the flattened patches of every node (in row order) followed by a
    reset patch for each step of the scope that is placed in the repository
    but no longer on the canvas. The result depends only on the inputs, so
    saving the same graph twice yields the same patch set.

    Raises:
        ScopeViolationError: a node belongs to a step outside ``scope``
        ValidationError: two nodes stand for the same step
    """
    engine = engine or RowLayoutEngine()
    all_steps = list(all_steps)
    visible = steps_in_view(all_steps, scope)
    visible_ids = {s.id for s in visible}

    foreign = [n.id for n in nodes if n.step_id not in visible_ids]
    if foreign:
        raise ScopeViolationError(
            f"Nodes outside scope {scope.label()}: {', '.join(foreign)}"
        )

    seen: set[int] = set()
    for node in nodes:
        if node.step_id in seen:
            raise ValidationError(f"Step '{node.id}' appears twice on the canvas")
        seen.add(node.step_id)

    by_id = {s.id: s for s in visible}
    hidden_keys = {s.key for s in all_steps} - {s.key for s in visible}
    placed = [
        _keep_hidden_dependencies(p, by_id[p.step_id], hidden_keys)
        for p in engine.flatten_graph(nodes, edges)
    ]
    patched = {p.step_id for p in placed}
    resets = [reset_patch(s) for s in visible if s.id not in patched and s.is_placed]
    return placed + resets
