"""
Tests for the per-issue dependency view.
"""

import unittest

from flowcast.dependency_graph import DependencyGraph, IssueDependencyView
from flowcast.models import GraphNode, NotFound, build_edges


class TestIssueDependencies(unittest.TestCase):
    """Test cases for blockers, dependents and execution order of one issue."""

    def setUp(self):
        """Set up a small board.

        #1 is closed, #4 sits in the Done column, the rest are open.
        """
        self.nodes = [
            GraphNode(1, "Design schema", is_open=False),
            GraphNode(2, "Write migration"),
            GraphNode(3, "Build API"),
            GraphNode(4, "Provision database", workflow_label="Done"),
            GraphNode(5, "Ship dashboard"),
            GraphNode(6, "Update docs"),
            GraphNode(7, "Import legacy data"),
        ]
        self.edges = build_edges(self.nodes, [
            (1, 3), (2, 3), (3, 5), (4, 5), (1, 6), (99, 7),
        ])
        self.graph = DependencyGraph(self.nodes, self.edges)

    def test_blockers_and_dependents(self):
        """Test direct neighbours with their resolution state."""
        view = self.graph.get_issue_dependencies(3)

        self.assertIsInstance(view, IssueDependencyView)
        self.assertEqual([r.node_id for r in view.blocked_by], [1, 2])
        self.assertEqual([r.resolved for r in view.blocked_by], [True, False])
        self.assertEqual([r.node_id for r in view.blocks], [5])

    def test_upstream_chain_preorder(self):
        """Test transitive blockers are listed depth-first."""
        view = self.graph.get_issue_dependencies(5)

        self.assertEqual(view.upstream_chain, [3, 1, 2, 4])
        self.assertFalse(view.is_unblocked)
        # Only #3 and #2 are still active upstream
        self.assertEqual(view.execution_order, 3)

    def test_downstream_chain(self):
        """Test transitive dependents exclude the issue itself."""
        view = self.graph.get_issue_dependencies(1)

        self.assertEqual(view.downstream_chain, [3, 5, 6])
        self.assertEqual(view.upstream_chain, [])
        self.assertTrue(view.is_unblocked)
        self.assertEqual(view.execution_order, 1)

    def test_unblocked_when_all_blockers_resolved(self):
        """Test an issue whose only blocker is closed."""
        view = self.graph.get_issue_dependencies(6)

        self.assertTrue(view.is_unblocked)
        self.assertEqual(view.execution_order, 1)

    def test_missing_blocker_reported_as_closed(self):
        """Test references to ids outside the snapshot."""
        view = self.graph.get_issue_dependencies(7)
        ref = view.blocked_by[0]

        self.assertEqual(ref.node_id, 99)
        self.assertEqual(ref.title, "Issue #99")
        self.assertFalse(ref.is_open)
        self.assertTrue(ref.resolved)
        self.assertTrue(view.is_unblocked)
        self.assertEqual(view.upstream_chain, [99])

    def test_not_found(self):
        """Test lookup of an unknown id."""
        result = self.graph.get_issue_dependencies(42)

        self.assertIsInstance(result, NotFound)
        self.assertFalse(result)
        self.assertEqual(result.node_id, 42)
        self.assertEqual(result.message, "Issue #42 not found")

    def test_to_dict(self):
        """Test serialization of the view."""
        data = self.graph.get_issue_dependencies(3).to_dict()

        self.assertEqual(data['issue_number'], 3)
        self.assertEqual(data['state'], 'OPEN')
        self.assertEqual(data['blocked_by'][0]['state'], 'CLOSED')
        self.assertEqual(data['blocks'][0]['number'], 5)
        self.assertEqual(data['execution_order'], 2)

    def test_cyclic_chain_terminates(self):
        """Test upstream traversal through a loop."""
        nodes = [GraphNode(i, f"Issue {i}") for i in (1, 2, 3)]
        graph = DependencyGraph(nodes, build_edges(nodes, [(1, 2), (2, 3), (3, 1)]))
        view = graph.get_issue_dependencies(1)

        self.assertEqual(view.upstream_chain, [3, 2])
        self.assertEqual(sorted(view.downstream_chain), [2, 3])


if __name__ == '__main__':
    unittest.main()
