"""
Row layout engine (no IO).

Converts between the two representations of a workflow:

canonical order
    ``display_order`` per step; steps sharing a value form one execution
    level, ``0`` means unplaced.
graph projection
    nodes with free coordinates plus edges derived from ``depends_on``.

``build_graph`` goes from the canonical order to the projection,
``flatten_graph`` goes back. For an acyclic, fully placed step set the round
trip keeps the relative level order and every dependency set; only the
``display_order`` values are renormalized to ``(row + 1) * order_step``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from workflows.dto.graph import (
    EDITABLE_NODE_FIELDS,
    DanglingDependency,
    ExecutionLevel,
    GraphEdge,
    GraphNode,
    WorkflowGraph,
)
from workflows.dto.step_patch import StepPatch
from workflows.enum.dependency_type import DependencyType
from workflows.models.workflow_step import WorkflowStep


@dataclass(frozen=True)
class LayoutConfig:
    """
    Geometry of the projection.

    Fields
    ------
    row_height : float
        Vertical distance between two levels.
    start_y : float
        Vertical coordinate of the first level.
    center_x : float
        Column every level is centered around.
    node_spacing : float
        Horizontal distance between parallel nodes (node width plus gap).
    row_tolerance : float
        Nodes closer than this to a row's anchor node join that row when
        flattening. Must stay below ``row_height`` for round trips to hold.
    order_step : int
        Gap between consecutive display orders, reserving room for manual
        insertion.
    """

    row_height: float = 180.0
    start_y: float = 50.0
    center_x: float = 600.0
    node_spacing: float = 320.0
    row_tolerance: float = 60.0
    order_step: int = 10

    def __post_init__(self) -> None:
        if self.row_tolerance <= 0:
            raise ValueError("row_tolerance must be positive")
        if self.row_tolerance > self.row_height:
            raise ValueError("row_tolerance must not exceed row_height")
        if self.order_step <= 0:
            raise ValueError("order_step must be positive")

    @classmethod
    def from_settings(cls, settings) -> "LayoutConfig":
        return cls(
            row_height=float(settings.row_height),
            start_y=float(settings.start_y),
            center_x=float(settings.center_x),
            node_spacing=float(settings.node_spacing),
            row_tolerance=float(settings.row_tolerance),
            order_step=int(settings.order_step),
        )


class RowLayoutEngine:
    """Stateless graph builder / flattener."""

    def __init__(self, config: Optional[LayoutConfig] = None) -> None:
        self.config = config or LayoutConfig()

    @classmethod
    def from_config(cls) -> "RowLayoutEngine":
        from core.config.config_service import config_service
        return cls(LayoutConfig.from_settings(config_service.layout))

    # -------- Geometry ----------------------------------------------------- #
    def level_y(self, index: int) -> float:
        return self.config.start_y + index * self.config.row_height

    def row_x_positions(self, count: int) -> List[float]:
        """Horizontal positions of ``count`` parallel nodes, centered as a group."""
        spacing = self.config.node_spacing
        start_x = self.config.center_x - (count * spacing) / 2
        return [start_x + i * spacing for i in range(count)]

    # -------- Canonical order -> projection -------------------------------- #
    def levels(self, scoped_steps: Iterable[WorkflowStep]) -> List[ExecutionLevel]:
        """Group placed steps into ascending execution levels (input order within a level)."""
        grouped: Dict[int, List[WorkflowStep]] = {}
        for step in scoped_steps:
            if step.display_order > 0:
                grouped.setdefault(step.display_order, []).append(step)
        return [ExecutionLevel(order, tuple(grouped[order])) for order in sorted(grouped)]

    def build_graph(self, scoped_steps: Sequence[WorkflowStep]) -> WorkflowGraph:
        """
        Build the projection of one scoped step list.

        Unplaced steps become the pick-list. Dependencies resolve only to
        placed steps of the same list; anything else yields no edge and one
        ``DanglingDependency`` warning.
        """
        scoped_steps = list(scoped_steps)
        graph = WorkflowGraph(unplaced=[s for s in scoped_steps if s.display_order <= 0])

        for index, level in enumerate(self.levels(scoped_steps)):
            y = self.level_y(index)
            for step, x in zip(level.steps, self.row_x_positions(len(level.steps))):
                graph.nodes.append(GraphNode(
                    id=step.key,
                    step=step,
                    x=x,
                    y=y,
                    dependency_type=step.dependency_type,
                ))

        on_canvas = {n.id for n in graph.nodes}
        known = {s.key for s in scoped_steps}
        seen: set[GraphEdge] = set()
        for node in graph.nodes:
            for dep_key in node.step.depends_on:
                if dep_key in on_canvas and dep_key != node.id:
                    edge = GraphEdge(source=dep_key, target=node.id)
                    if edge not in seen:
                        seen.add(edge)
                        graph.edges.append(edge)
                    continue
                reason = "unplaced" if dep_key in known else "unknown"
                graph.warnings.append(DanglingDependency(node.id, dep_key, reason))
        return graph

    def graph_from_levels(self, levels: Sequence[Sequence[WorkflowStep]]) -> WorkflowGraph:
        """
        Build a projection from explicit execution levels.

        Headless callers describe parallel steps as one inner sequence instead
        of positioning nodes; edges still come from ``depends_on``.
        """
        renumbered: List[WorkflowStep] = []
        for index, level in enumerate(levels):
            order = (index + 1) * self.config.order_step
            renumbered.extend(step.with_changes(display_order=order) for step in level)
        return self.build_graph(renumbered)

    # -------- Projection -> canonical order -------------------------------- #
    def group_rows(self, nodes: Iterable[GraphNode]) -> List[List[GraphNode]]:
        """
        Bucket nodes into rows by vertical proximity.

        Nodes are sorted by ``y`` (stable, so ties keep list order). A node
        joins the current row while it is closer than ``row_tolerance`` to the
        row's first node, otherwise it opens a new row.
        """
        rows: List[List[GraphNode]] = []
        for node in sorted(nodes, key=lambda n: n.y):
            if rows and abs(node.y - rows[-1][0].y) < self.config.row_tolerance:
                rows[-1].append(node)
            else:
                rows.append([node])
        return rows

    def flatten_graph(self, nodes: Sequence[GraphNode], edges: Sequence[GraphEdge]) -> List[StepPatch]:
        """
        Turn an edited projection into one patch per node.

        Each patch carries the new ``display_order``, the ``depends_on`` list
        rebuilt from incoming edges, the resulting dependency type and any
        in-place edits held by the node.
        """
        on_canvas = {n.id for n in nodes}
        incoming: Dict[str, List[str]] = {}
        for edge in edges:
            if edge.source not in on_canvas or edge.target not in on_canvas:
                continue
            if edge.source == edge.target:
                continue
            sources = incoming.setdefault(edge.target, [])
            if edge.source not in sources:
                sources.append(edge.source)

        patches: List[StepPatch] = []
        for row_index, row in enumerate(self.group_rows(nodes)):
            order = (row_index + 1) * self.config.order_step
            for node in row:
                depends_on = tuple(incoming.get(node.id, ()))
                dep_type = node.dependency_type
                if depends_on and dep_type is DependencyType.NONE:
                    dep_type = DependencyType.ANY
                edits = {k: v for k, v in node.edits.items() if k in EDITABLE_NODE_FIELDS}
                patches.append(StepPatch(
                    step_id=node.step_id,
                    display_order=order,
                    depends_on=depends_on,
                    dependency_type=dep_type,
                    **edits,
                ))
        return patches
