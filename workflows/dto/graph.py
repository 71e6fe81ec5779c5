"""Graph projection DTOs.

The graph is a regenerable view over the canonical step list: nodes are keyed
by step ``key``, edges point from a dependency to the step depending on it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from workflows.enum.dependency_type import DependencyType
from workflows.models.workflow_step import WorkflowStep

# Fields a node may carry as in-place edits; they are copied into the saved patch.
EDITABLE_NODE_FIELDS = frozenset({
    "name",
    "description",
    "required_role",
    "color",
    "icon",
    "email_step",
    "is_active",
})


@dataclass(slots=True)
class GraphNode:
    """A placed step on the editing canvas."""

    id: str
    step: WorkflowStep
    x: float
    y: float
    dependency_type: DependencyType
    edits: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return self.id

    @property
    def step_id(self) -> int:
        return self.step.id

    def value(self, name: str) -> Any:
        """Current value of a step field, honoring unsaved edits."""
        if name in self.edits:
            return self.edits[name]
        return getattr(self.step, name)


@dataclass(frozen=True, slots=True)
class GraphEdge:
    source: str
    target: str

    @property
    def id(self) -> str:
        return f"e-{self.source}-{self.target}"


@dataclass(frozen=True, slots=True)
class ExecutionLevel:
    """Steps sharing one display order; they may run in parallel."""

    display_order: int
    steps: Tuple[WorkflowStep, ...]

    @property
    def keys(self) -> Tuple[str, ...]:
        return tuple(s.key for s in self.steps)


@dataclass(frozen=True, slots=True)
class DanglingDependency:
    """A ``depends_on`` entry that produced no edge."""

    step_key: str
    missing_key: str
    reason: str  # "unknown" or "unplaced"

    def describe(self) -> str:
        if self.reason == "unplaced":
            return f"'{self.step_key}' depends on '{self.missing_key}', which is not placed"
        return f"'{self.step_key}' depends on unknown step '{self.missing_key}'"


@dataclass
class WorkflowGraph:
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)
    unplaced: List[WorkflowStep] = field(default_factory=list)
    warnings: List[DanglingDependency] = field(default_factory=list)

    def node(self, key: str) -> Optional[GraphNode]:
        for n in self.nodes:
            if n.id == key:
                return n
        return None

    def incoming(self, key: str) -> List[GraphEdge]:
        return [e for e in self.edges if e.target == key]

    def outgoing(self, key: str) -> List[GraphEdge]:
        return [e for e in self.edges if e.source == key]
