"""Tests for WorkflowGraph ordering and cycle search."""

from workflow_converter.workflow import WorkflowGraph


class TestTopologicalOrder:

    def test_linear_chain(self):
        graph = WorkflowGraph(["a", "b", "c"], [("a", "b"), ("b", "c")])

        assert graph.topological_order() == ["a", "b", "c"]

    def test_no_edges_keeps_declaration_order(self):
        graph = WorkflowGraph(["c", "a", "b"], [])

        assert graph.topological_order() == ["c", "a", "b"]

    def test_ties_broken_by_declaration_position(self):
        # b and c both become ready after a; c was declared first
        graph = WorkflowGraph(["a", "c", "b", "d"], [("a", "b"), ("a", "c"), ("b", "d"), ("c", "d")])

        assert graph.topological_order() == ["a", "c", "b", "d"]

    def test_edges_to_unknown_nodes_ignored(self):
        graph = WorkflowGraph(["a", "b"], [("a", "zzz"), ("a", "b")])

        assert graph.downstream("a") == ["b"]
        assert graph.topological_order() == ["a", "b"]

    def test_upstream_and_downstream(self):
        graph = WorkflowGraph(["a", "b", "c"], [("a", "c"), ("b", "c")])

        assert graph.upstream("c") == ["a", "b"]
        assert graph.downstream("a") == ["c"]
        assert graph.upstream("a") == []


class TestCycles:

    def test_two_node_cycle(self):
        graph = WorkflowGraph(["a", "b"], [("a", "b"), ("b", "a")])

        assert graph.find_cycle() == ["a", "b", "a"]
        assert graph.has_cycle()

    def test_self_loop(self):
        graph = WorkflowGraph(["a"], [("a", "a")])

        assert graph.find_cycle() == ["a", "a"]

    def test_cycle_behind_acyclic_prefix(self):
        graph = WorkflowGraph(["t", "a", "b", "c"], [("t", "a"), ("a", "b"), ("b", "c"), ("c", "a")])

        assert graph.find_cycle() == ["a", "b", "c", "a"]

    def test_diamond_is_not_a_cycle(self):
        graph = WorkflowGraph(["a", "b", "c", "d"], [("a", "b"), ("a", "c"), ("b", "d"), ("c", "d")])

        assert graph.find_cycle() is None

    def test_removing_a_cycle_edge_makes_graph_acyclic(self):
        edges = [("a", "b"), ("b", "c"), ("c", "a")]
        for removed in edges:
            remaining = [edge for edge in edges if edge != removed]
            assert not WorkflowGraph(["a", "b", "c"], remaining).has_cycle()

    def test_execution_order_falls_back_to_declaration_order(self):
        graph = WorkflowGraph(["b", "a", "c"], [("a", "b"), ("b", "a"), ("a", "c")])

        assert len(graph.topological_order()) < 3
        assert graph.execution_order() == ["b", "a", "c"]
