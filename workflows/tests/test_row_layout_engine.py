"""
workflows/tests/test_row_layout_engine.py

Unit tests for building and flattening the workflow graph projection.
Uses unittest to avoid external test dependencies.
"""

from __future__ import annotations

import unittest

from workflows.dto.graph import GraphEdge, GraphNode
from workflows.enum.dependency_type import DependencyType
from workflows.models.workflow_step import WorkflowStep
from workflows.services.layout.row_layout_engine import LayoutConfig, RowLayoutEngine


def _step(step_id: int, key: str, order: int, dep=DependencyType.NONE, deps=()) -> WorkflowStep:
    return WorkflowStep(
        id=step_id,
        key=key,
        name=key.title(),
        required_role="ICS",
        dependency_type=dep,
        depends_on=tuple(deps),
        display_order=order,
    )


def _node(step: WorkflowStep, x: float, y: float) -> GraphNode:
    return GraphNode(id=step.key, step=step, x=x, y=y, dependency_type=step.dependency_type)


class TestBuildGraph(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = RowLayoutEngine(LayoutConfig())
        self.steps = [
            _step(1, "intake", 10),
            _step(2, "security", 20, DependencyType.ANY, ["intake"]),
            _step(3, "medical", 20, DependencyType.ANY, ["intake"]),
            _step(4, "badge", 30, DependencyType.ALL, ["security", "medical"]),
            _step(5, "later", 0),
        ]

    def test_levels_and_coordinates(self) -> None:
        graph = self.engine.build_graph(self.steps)
        pos = {n.id: (n.x, n.y) for n in graph.nodes}
        self.assertEqual(pos["intake"], (440.0, 50.0))
        self.assertEqual(pos["security"], (280.0, 230.0))
        self.assertEqual(pos["medical"], (600.0, 230.0))
        self.assertEqual(pos["badge"], (440.0, 410.0))

    def test_unplaced_steps_go_to_pick_list(self) -> None:
        graph = self.engine.build_graph(self.steps)
        self.assertEqual([s.key for s in graph.unplaced], ["later"])
        self.assertIsNone(graph.node("later"))

    def test_edges_follow_depends_on(self) -> None:
        graph = self.engine.build_graph(self.steps)
        self.assertEqual(
            [(e.source, e.target) for e in graph.edges],
            [("intake", "security"), ("intake", "medical"), ("security", "badge"), ("medical", "badge")],
        )
        self.assertEqual(graph.edges[0].id, "e-intake-security")
        self.assertEqual(graph.warnings, [])

    def test_dangling_dependencies_produce_warnings_not_edges(self) -> None:
        steps = self.steps + [_step(6, "orphan", 10, DependencyType.ANY, ["ghost", "later"])]
        graph = self.engine.build_graph(steps)
        self.assertEqual(graph.incoming("orphan"), [])
        reasons = {(w.missing_key, w.reason) for w in graph.warnings}
        self.assertEqual(reasons, {("ghost", "unknown"), ("later", "unplaced")})

    def test_duplicate_dependency_yields_one_edge(self) -> None:
        steps = [_step(1, "a", 10), _step(2, "b", 20, DependencyType.ANY, ["a", "a"])]
        graph = self.engine.build_graph(steps)
        self.assertEqual(len(graph.edges), 1)

    def test_graph_from_levels_renumbers(self) -> None:
        a, b, c = _step(1, "a", 0), _step(2, "b", 0), _step(3, "c", 0, DependencyType.ANY, ["a"])
        graph = self.engine.graph_from_levels([[a, b], [c]])
        self.assertEqual([n.step.display_order for n in graph.nodes], [10, 10, 20])
        self.assertEqual([(e.source, e.target) for e in graph.edges], [("a", "c")])


class TestFlattenGraph(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = RowLayoutEngine(LayoutConfig())

    def test_round_trip_preserves_levels_and_dependencies(self) -> None:
        steps = [
            _step(1, "intake", 7),
            _step(2, "security", 15, DependencyType.ANY, ["intake"]),
            _step(3, "medical", 15, DependencyType.ANY, ["intake"]),
            _step(4, "badge", 99, DependencyType.ALL, ["security", "medical"]),
        ]
        graph = self.engine.build_graph(steps)
        patches = {p.step_id: p for p in self.engine.flatten_graph(graph.nodes, graph.edges)}

        self.assertEqual([patches[i].display_order for i in (1, 2, 3, 4)], [10, 20, 20, 30])
        for step in steps:
            self.assertEqual(patches[step.id].depends_on, step.depends_on)
            self.assertEqual(patches[step.id].dependency_type, step.dependency_type)

    def test_rows_join_within_tolerance_of_anchor(self) -> None:
        a, b, c = _step(1, "a", 10), _step(2, "b", 10), _step(3, "c", 10)
        nodes = [_node(a, 0, 50), _node(b, 300, 100), _node(c, 600, 140)]
        rows = self.engine.group_rows(nodes)
        # c is 40 below b but 90 below the row anchor a
        self.assertEqual([[n.id for n in row] for row in rows], [["a", "b"], ["c"]])

        patches = self.engine.flatten_graph(nodes, [])
        self.assertEqual([p.display_order for p in patches], [10, 10, 20])

    def test_ties_keep_input_order(self) -> None:
        a, b, c = _step(1, "a", 10), _step(2, "b", 10), _step(3, "c", 10)
        nodes = [_node(c, 900, 50), _node(a, 0, 50), _node(b, 300, 50)]
        patches = self.engine.flatten_graph(nodes, [])
        self.assertEqual([p.step_id for p in patches], [3, 1, 2])
        self.assertEqual({p.display_order for p in patches}, {10})

    def test_dependency_type_fixups(self) -> None:
        root = _step(1, "root", 10)
        was_none = _step(2, "was_none", 20, DependencyType.NONE)
        was_all = _step(3, "was_all", 20, DependencyType.ALL, ["root"])
        was_any = _step(4, "was_any", 20, DependencyType.ANY, ["root"])
        nodes = [
            _node(root, 440, 50), _node(was_none, 120, 230),
            _node(was_all, 440, 230), _node(was_any, 760, 230),
        ]
        edges = [GraphEdge("root", "was_none")]

        patches = {p.step_id: p for p in self.engine.flatten_graph(nodes, edges)}
        self.assertIs(patches[1].dependency_type, DependencyType.NONE)
        self.assertIs(patches[2].dependency_type, DependencyType.ANY)
        self.assertEqual(patches[2].depends_on, ("root",))
        # losing every incoming edge keeps an explicit type
        self.assertIs(patches[3].dependency_type, DependencyType.ALL)
        self.assertEqual(patches[3].depends_on, ())
        self.assertIs(patches[4].dependency_type, DependencyType.ANY)
        self.assertEqual(patches[4].depends_on, ())

    def test_all_survives_removal_of_its_only_edge(self) -> None:
        intake = _step(1, "intake", 10)
        gated = _step(2, "gated", 20, DependencyType.ALL, ["intake"])
        nodes = [_node(intake, 600, 50), _node(gated, 600, 230)]
        edges = [GraphEdge("intake", "gated")]

        edges.remove(GraphEdge("intake", "gated"))
        patch = self.engine.flatten_graph(nodes, edges)[1]
        self.assertEqual(patch.step_id, 2)
        self.assertIs(patch.dependency_type, DependencyType.ALL)

    def test_all_is_kept_when_edges_remain(self) -> None:
        a, b = _step(1, "a", 10), _step(2, "b", 20, DependencyType.ALL, ["a"])
        nodes = [_node(a, 0, 50), _node(b, 0, 230)]
        patches = self.engine.flatten_graph(nodes, [GraphEdge("a", "b")])
        self.assertIs(patches[1].dependency_type, DependencyType.ALL)

    def test_edges_to_nodes_off_canvas_are_ignored(self) -> None:
        a = _step(1, "a", 10)
        patches = self.engine.flatten_graph([_node(a, 0, 50)], [GraphEdge("gone", "a"), GraphEdge("a", "a")])
        self.assertEqual(patches[0].depends_on, ())

    def test_node_edits_are_carried_into_patches(self) -> None:
        a = _step(1, "a", 10)
        node = _node(a, 0, 50)
        node.edits.update({"name": "Renamed", "color": "#000000", "x": 1})
        patch = self.engine.flatten_graph([node], [])[0]
        self.assertEqual(patch.name, "Renamed")
        self.assertEqual(patch.color, "#000000")
        self.assertNotIn("x", patch.changes())


class TestLayoutConfig(unittest.TestCase):
    def test_rejects_tolerance_above_row_height(self) -> None:
        with self.assertRaises(ValueError):
            LayoutConfig(row_height=100, row_tolerance=150)

    def test_rejects_non_positive_order_step(self) -> None:
        with self.assertRaises(ValueError):
            LayoutConfig(order_step=0)

    def test_custom_order_step(self) -> None:
        engine = RowLayoutEngine(LayoutConfig(order_step=100))
        a, b = _step(1, "a", 10), _step(2, "b", 20)
        graph = engine.build_graph([a, b])
        self.assertEqual([p.display_order for p in engine.flatten_graph(graph.nodes, graph.edges)], [100, 200])


if __name__ == "__main__":
    unittest.main()
