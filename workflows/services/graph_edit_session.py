"""
Graph edit session.

Headless counterpart of the workflow canvas: holds the graph projection of
one scope, applies editing operations to it and saves the result through the
step service as one atomic patch set. The canonical step list is only
replaced after a successful save; a failed save leaves both the repository
and the in-memory graph untouched.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from workflows.dto.graph import (
    EDITABLE_NODE_FIELDS,
    DanglingDependency,
    GraphEdge,
    GraphNode,
    WorkflowGraph,
)
from workflows.dto.step_patch import StepPatch
from workflows.enum.dependency_type import DependencyType
from workflows.exceptions.errors import (
    SaveError,
    ScopeViolationError,
    ValidationError,
)
from workflows.models.step_scope import StepScope
from workflows.models.workflow_step import WorkflowStep
from workflows.services.audit_service import AuditService
from workflows.services.layout.row_layout_engine import RowLayoutEngine
from workflows.services.save_protocol import prepare_save
from workflows.services.scope_filter import steps_in_view
from workflows.services.step_service import StepService

logger = logging.getLogger(__name__)


class GraphEditSession:
    """Edits the workflow graph of one (form, audience, phase) view."""

    def __init__(
        self,
        service: StepService,
        scope: StepScope,
        *,
        engine: Optional[RowLayoutEngine] = None,
        audit: Optional[AuditService] = None,
    ) -> None:
        self._service = service
        self.scope = scope
        self._engine = engine or RowLayoutEngine.from_config()
        self._audit = audit or service.audit
        self._steps: Tuple[WorkflowStep, ...] = ()
        self._graph = WorkflowGraph()
        self._dirty = False
        self.load()

    # ------------------------------------------------------------------ #
    #  State                                                             #
    # ------------------------------------------------------------------ #
    def load(self) -> WorkflowGraph:
        """(Re)build the projection from the repository, dropping unsaved edits."""
        self._steps = tuple(self._service.list_steps())
        self._graph = self._engine.build_graph(steps_in_view(self._steps, self.scope))
        self._dirty = False
        if self._graph.warnings:
            self._audit.log_dangling_dependencies(self._graph.warnings, scope=self.scope)
        logger.debug(
            "Loaded %s: %d nodes, %d edges, %d unplaced",
            self.scope.label(), len(self._graph.nodes), len(self._graph.edges), len(self._graph.unplaced),
        )
        return self._graph

    reset = load

    @property
    def steps(self) -> Tuple[WorkflowStep, ...]:
        """Canonical step list as of the last load or save."""
        return self._steps

    @property
    def graph(self) -> WorkflowGraph:
        return self._graph

    @property
    def nodes(self) -> List[GraphNode]:
        return list(self._graph.nodes)

    @property
    def edges(self) -> List[GraphEdge]:
        return list(self._graph.edges)

    @property
    def warnings(self) -> List[DanglingDependency]:
        return list(self._graph.warnings)

    @property
    def unplaced(self) -> List[WorkflowStep]:
        """Steps of the view that are not on the canvas (the pick-list)."""
        on_canvas = {n.id for n in self._graph.nodes}
        return [s for s in steps_in_view(self._steps, self.scope) if s.key not in on_canvas]

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def rows(self) -> List[List[str]]:
        """Node keys per execution level, top to bottom."""
        return [[n.id for n in row] for row in self._engine.group_rows(self._graph.nodes)]

    # ------------------------------------------------------------------ #
    #  Nodes                                                             #
    # ------------------------------------------------------------------ #
    def place_step(
        self,
        key: str,
        *,
        level: Optional[int] = None,
        x: Optional[float] = None,
        y: Optional[float] = None,
    ) -> GraphNode:
        """
        Put a pick-list step on the canvas.

        Without coordinates the node is appended to ``level`` (an existing
        row index, or the row count for a new bottom row; default: new row).
        """
        step = self._visible_step(key)
        if self._graph.node(key) is not None:
            raise ValidationError(f"Step '{key}' is already on the canvas")

        if y is None:
            y, row_x = self._slot(level, exclude=None)
            if x is None:
                x = row_x
        elif x is None:
            x = self._engine.config.center_x

        node = GraphNode(id=step.key, step=step, x=float(x), y=float(y), dependency_type=step.dependency_type)
        self._graph.nodes.append(node)
        self._dirty = True
        return node

    def remove_node(self, key: str) -> None:
        """Take a node off the canvas; its step returns to the pick-list."""
        node = self._node(key)
        self._graph.nodes.remove(node)
        self._graph.edges = [e for e in self._graph.edges if key not in (e.source, e.target)]
        self._dirty = True

    def move_node(self, key: str, x: float, y: float) -> None:
        node = self._node(key)
        node.x, node.y = float(x), float(y)
        self._dirty = True

    def move_to_level(self, key: str, level: int) -> None:
        """Move a node to the end of an existing row or into a new bottom row."""
        node = self._node(key)
        node.y, node.x = self._slot(level, exclude=key)
        self._dirty = True

    # ------------------------------------------------------------------ #
    #  Edges                                                             #
    # ------------------------------------------------------------------ #
    def connect(self, source: str, target: str) -> GraphEdge:
        """
        Add a dependency edge (``target`` depends on ``source``).

        Duplicate edges are not added twice.

        Raises:
            ValidationError: unknown node, self loop or cycle
            ScopeViolationError: a global target would depend on a form step
        """
        source_step = self._node(source).step
        target_step = self._node(target).step
        if source == target:
            raise ValidationError(f"Step '{source}' cannot depend on itself")
        if not target_step.scope.contains(source_step):
            raise ScopeViolationError(
                f"Global step '{target}' cannot depend on '{source}' of {source_step.scope.label()}"
            )
        edge = GraphEdge(source=source, target=target)
        if edge in self._graph.edges:
            return edge
        if self._reaches(target, source):
            raise ValidationError(f"Connecting '{source}' -> '{target}' would create a cycle")
        self._graph.edges.append(edge)
        self._dirty = True
        return edge

    def disconnect(self, source: str, target: str) -> bool:
        edge = GraphEdge(source=source, target=target)
        if edge not in self._graph.edges:
            return False
        self._graph.edges.remove(edge)
        self._dirty = True
        return True

    def _reaches(self, start: str, goal: str) -> bool:
        outgoing: Dict[str, List[str]] = {}
        for e in self._graph.edges:
            outgoing.setdefault(e.source, []).append(e.target)
        stack, seen = [start], set()
        while stack:
            current = stack.pop()
            if current == goal:
                return True
            if current in seen:
                continue
            seen.add(current)
            stack.extend(outgoing.get(current, ()))
        return False

    # ------------------------------------------------------------------ #
    #  In-place edits                                                    #
    # ------------------------------------------------------------------ #
    def edit_node(self, key: str, **fields) -> GraphNode:
        """
        Edit a node in place.

        Accepts the editable step fields plus ``dependency_type`` and
        ``depends_on``. A new ``depends_on`` list replaces the node's incoming
        edges (entries not on the canvas are ignored). Setting ``email_step``
        clears the flag on the other nodes of the same exact scope.
        """
        allowed = EDITABLE_NODE_FIELDS | {"dependency_type", "depends_on"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValidationError(f"Fields not editable on the canvas: {', '.join(sorted(unknown))}")

        node = self._node(key)

        if "dependency_type" in fields:
            try:
                node.dependency_type = DependencyType.parse(fields.pop("dependency_type"))
            except ValueError as ex:
                raise ValidationError(str(ex)) from ex

        if "depends_on" in fields:
            self._replace_incoming(key, fields.pop("depends_on") or ())

        if fields.get("email_step"):
            for other in self._graph.nodes:
                if other is not node and other.value("email_step") and node.step.scope.owns(other.step):
                    other.edits["email_step"] = False

        node.edits.update(fields)
        self._dirty = True
        return node

    def _replace_incoming(self, key: str, depends_on) -> None:
        previous = list(self._graph.edges)
        self._graph.edges = [e for e in self._graph.edges if e.target != key]
        try:
            for dep in depends_on:
                dep = str(dep).strip()
                if dep == key or self._graph.node(dep) is None:
                    continue
                self.connect(dep, key)
        except (ValidationError, ScopeViolationError):
            self._graph.edges = previous
            raise

    # ------------------------------------------------------------------ #
    #  Save                                                              #
    # ------------------------------------------------------------------ #
    def pending_patches(self) -> List[StepPatch]:
        """Patch set a save would write now."""
        return prepare_save(self._graph.nodes, self._graph.edges, self._steps, self.scope, self._engine)

    def save(self, *, actor_id: str = "system") -> List[StepPatch]:
        """
        Persist the edited graph atomically and reload it.

        Raises:
            ScopeViolationError, ValidationError: the patch set was rejected
            SaveError: persisting failed; nothing was written
        """
        patches = self.pending_patches()
        try:
            written = self._service.bulk_update_steps(patches, scope=self.scope, actor_id=actor_id)
        except (ValidationError, ScopeViolationError):
            raise
        except Exception as ex:
            self._audit.log_save_failed(scope=self.scope, error_message=str(ex), actor_id=actor_id)
            raise SaveError(f"Saving workflow {self.scope.label()} failed: {ex}") from ex

        on_canvas = {n.step_id for n in self._graph.nodes}
        reset_keys = [
            s.key for s in steps_in_view(self._steps, self.scope)
            if s.is_placed and s.id not in on_canvas
        ]
        self._audit.log_flow_saved(
            scope=self.scope, patch_count=len(written), reset_keys=reset_keys, actor_id=actor_id
        )
        self.load()
        return written

    # ------------------------------------------------------------------ #
    #  Helpers                                                           #
    # ------------------------------------------------------------------ #
    def _node(self, key: str) -> GraphNode:
        node = self._graph.node(key)
        if node is None:
            raise ValidationError(f"Step '{key}' is not on the canvas")
        return node

    def _visible_step(self, key: str) -> WorkflowStep:
        for step in self._steps:
            if step.key == key:
                if not self.scope.contains(step):
                    raise ScopeViolationError(f"Step '{key}' is outside scope {self.scope.label()}")
                return step
        raise ValidationError(f"Unknown step '{key}'")

    def _slot(self, level: Optional[int], *, exclude: Optional[str]) -> Tuple[float, float]:
        """(y, x) for appending a node to row ``level``."""
        rows = self._engine.group_rows(n for n in self._graph.nodes if n.id != exclude)
        index = len(rows) if level is None else level
        if index < 0 or index > len(rows):
            raise ValidationError(f"Level {level} out of range 0..{len(rows)}")
        cfg = self._engine.config
        if index < len(rows):
            row = rows[index]
            return row[0].y, max(n.x for n in row) + cfg.node_spacing
        y = rows[-1][0].y + cfg.row_height if rows else self._engine.level_y(0)
        return y, self._engine.row_x_positions(1)[0]
