"""Test dependency graph analysis."""

import pytest

from flowcast.config import GraphConfig
from flowcast.dependency_graph import DependencyGraph
from flowcast.models import GraphNode, DependencyEdge, build_edges


def make_nodes(*ids, closed=(), done=()):
    return [
        GraphNode(
            id=i,
            title=f"Issue {i}",
            is_open=i not in closed,
            workflow_label="Done" if i in done else None,
        )
        for i in ids
    ]


def open_edges(*pairs):
    return [DependencyEdge(a, b, resolved=False) for a, b in pairs]


class TestDegreesAndConstruction:
    """Test graph construction from nodes and edges."""

    def test_degree_sums_match_edge_count(self):
        """Test in- and out-degree totals both equal the edge count."""
        nodes = make_nodes(1, 2, 3, 4)
        edges = open_edges((1, 2), (1, 3), (2, 4), (3, 4), (4, 99))
        graph = DependencyGraph(nodes, edges)

        in_total = sum(d for _, d in graph.graph.in_degree())
        out_total = sum(d for _, d in graph.graph.out_degree())
        assert in_total == out_total == len(graph.edges) == 5

    def test_duplicate_edges_collapsed(self):
        """Test repeated blocker pairs are stored once."""
        graph = DependencyGraph(make_nodes(1, 2), open_edges((1, 2), (1, 2)))

        assert len(graph.edges) == 1
        assert graph.analyze().total_edges == 1

    def test_dangling_edges_do_not_crash(self):
        """Test edges to ids outside the node list."""
        nodes = make_nodes(1, 2)
        edges = open_edges((1, 99), (98, 2), (97, 96))
        result = DependencyGraph(nodes, edges).analyze()

        assert result.total_issues == 2
        assert result.total_edges == 3
        assert result.connected_issues == 6
        assert {m.node_id for m in result.nodes} == {1, 2}
        assert result.critical_path.length == 0


class TestCycleDetection:
    """Test three-colour cycle detection."""

    def test_acyclic_graph_has_no_cycles(self):
        """Test a diamond reports no cycles."""
        graph = DependencyGraph(make_nodes(1, 2, 3, 4), open_edges((1, 2), (2, 3), (1, 4), (4, 3)))
        assert graph.detect_cycles() == []

    @pytest.mark.parametrize("order", [(1, 2, 3), (2, 3, 1), (3, 1, 2), (3, 2, 1)])
    def test_three_node_cycle_found_once(self, order):
        """Test a loop is reported once whatever node it is entered from."""
        graph = DependencyGraph(make_nodes(*order), open_edges((1, 2), (2, 3), (3, 1)))
        cycles = graph.detect_cycles()

        assert len(cycles) == 1
        assert set(cycles[0].node_ids) == {1, 2, 3}

    def test_self_loop_is_a_cycle(self):
        """Test an issue blocking itself."""
        cycles = DependencyGraph(make_nodes(5), open_edges((5, 5))).detect_cycles()

        assert [c.node_ids for c in cycles] == [[5]]

    def test_cycle_description(self):
        """Test cycle description and serialization."""
        cycles = DependencyGraph(make_nodes(1, 2), open_edges((1, 2), (2, 1))).detect_cycles()

        assert cycles[0].description.startswith("Circular dependency: #")
        assert cycles[0].to_dict()['issues'] == cycles[0].node_ids

    def test_resolved_edges_still_form_cycles(self):
        """Test cycles are found regardless of edge resolution."""
        edges = [DependencyEdge(1, 2, resolved=True), DependencyEdge(2, 1, resolved=True)]
        assert len(DependencyGraph(make_nodes(1, 2), edges).detect_cycles()) == 1


class TestDepths:
    """Test longest-path depth calculation."""

    def test_chain_depths(self):
        """Test each link in a chain adds one level."""
        depths = DependencyGraph(make_nodes(1, 2, 3), open_edges((1, 2), (2, 3))).calculate_depths()
        assert depths == {1: 0, 2: 1, 3: 2}

    def test_depth_uses_longest_branch(self):
        """Test depth follows the longest blocker chain."""
        graph = DependencyGraph(
            make_nodes(1, 2, 3, 4),
            open_edges((1, 2), (2, 3), (1, 4), (3, 4)),
        )
        assert graph.calculate_depths()[4] == 3

    def test_missing_blockers_give_depth_zero(self):
        """Test blockers outside the node list are ignored."""
        depths = DependencyGraph(make_nodes(4), open_edges((99, 4))).calculate_depths()
        assert depths == {4: 0}

    def test_cycles_terminate(self):
        """Test depth calculation on a loop."""
        depths = DependencyGraph(make_nodes(1, 2, 3), open_edges((1, 2), (2, 3), (3, 1))).calculate_depths()

        assert set(depths) == {1, 2, 3}
        assert all(d >= 0 for d in depths.values())

    def test_deep_chain_does_not_overflow(self):
        """Test very long chains do not hit the recursion limit."""
        n = 5000
        graph = DependencyGraph(make_nodes(*range(1, n + 1)),
                                open_edges(*[(i, i + 1) for i in range(1, n)]))

        assert graph.calculate_depths()[n] == n - 1
        assert graph.detect_cycles() == []
        assert graph.find_critical_path().length == n


class TestCriticalPath:
    """Test critical path search."""

    def test_simple_chain(self):
        """Test the three-issue chain."""
        graph = DependencyGraph(make_nodes(1, 2, 3), open_edges((1, 2), (2, 3)))
        path = graph.find_critical_path()

        assert path.node_ids == [1, 2, 3]
        assert path.length == 3
        assert path.titles == ["Issue 1", "Issue 2", "Issue 3"]
        assert "#1 -> #2 -> #3" in path.description

    def test_no_unresolved_edges_gives_empty_chain(self):
        """Test the empty chain when everything is resolved."""
        edges = [DependencyEdge(1, 2, resolved=True)]
        path = DependencyGraph(make_nodes(1, 2), edges).find_critical_path()

        assert path.node_ids == []
        assert path.length == 0
        assert path.description == "No unresolved dependency chains found"

    def test_closed_nodes_excluded(self):
        """Test closed issues never appear on the path."""
        nodes = make_nodes(1, 2, 3, closed=(1,))
        edges = build_edges(nodes, [(1, 2), (2, 3)])
        path = DependencyGraph(nodes, edges).find_critical_path()

        assert path.node_ids == [2, 3]

    def test_terminal_label_excluded(self):
        """Test issues in the Done column never appear on the path."""
        nodes = make_nodes(1, 2, 3, 4, done=(2,))
        path = DependencyGraph(nodes, open_edges((1, 2), (2, 3), (3, 4))).find_critical_path()

        assert 2 not in path.node_ids
        assert path.node_ids == [3, 4]

    def test_resolved_edge_excluded(self):
        """Test resolved edges are not followed."""
        edges = [DependencyEdge(1, 2, resolved=True), DependencyEdge(2, 3, resolved=False)]
        path = DependencyGraph(make_nodes(1, 2, 3), edges).find_critical_path()

        assert path.node_ids == [2, 3]

    def test_longest_branch_wins(self):
        """Test the longer of two branches is chosen."""
        graph = DependencyGraph(
            make_nodes(1, 2, 3, 4, 5),
            open_edges((1, 2), (1, 3), (3, 4), (4, 5)),
        )
        assert graph.find_critical_path().node_ids == [1, 3, 4, 5]

    def test_pure_cycle_falls_back_to_all_start_points(self):
        """Test a loop with no root still yields a path."""
        graph = DependencyGraph(make_nodes(1, 2, 3), open_edges((1, 2), (2, 3), (3, 1)))
        path = graph.find_critical_path()

        assert path.length == 3
        assert set(path.node_ids) == {1, 2, 3}

    def test_never_longer_than_open_node_count(self):
        """Test path length is bounded by the open issue count."""
        nodes = make_nodes(1, 2, 3, 4, 5, 6, closed=(6,))
        edges = open_edges((1, 2), (2, 3), (3, 1), (3, 4), (4, 5), (5, 6))
        path = DependencyGraph(nodes, edges).find_critical_path()

        open_count = sum(1 for n in nodes if n.is_open)
        assert path.length <= open_count
        assert 6 not in path.node_ids


class TestBottlenecks:
    """Test bottleneck ranking."""

    def test_chain_bottleneck(self):
        """Test the head of a chain blocks everything below it."""
        graph = DependencyGraph(make_nodes(1, 2, 3), open_edges((1, 2), (2, 3)))
        bottlenecks = graph.find_bottlenecks()

        first = bottlenecks[0]
        assert first.node_id == 1
        assert first.direct_blocks == 1
        assert first.transitive_blocks == 2
        assert first.severity == "medium"

    def test_severity_thresholds(self):
        """Test critical, high and medium severity cut-offs."""
        nodes = make_nodes(*range(1, 12))
        edges = open_edges(
            (1, 2), (1, 3), (1, 4), (1, 5), (1, 6),   # 5 dependents
            (7, 8), (7, 9), (9, 10),                  # 3 dependents
        )
        by_id = {b.node_id: b for b in DependencyGraph(nodes, edges).find_bottlenecks()}

        assert by_id[1].severity == "critical"
        assert by_id[7].severity == "high"
        assert by_id[9].severity == "medium"
        assert "CRITICAL" in by_id[1].recommendation

    def test_ranking_and_limit(self):
        """Test ordering by transitive reach and the default top 10."""
        pairs = [(i, 100 + i) for i in range(1, 13)]
        pairs += [(1, 200), (200, 201)]
        nodes = make_nodes(*range(1, 13), *[100 + i for i in range(1, 13)], 200, 201)
        bottlenecks = DependencyGraph(nodes, open_edges(*pairs)).find_bottlenecks()

        assert len(bottlenecks) == 10
        assert bottlenecks[0].node_id == 1
        assert [b.transitive_blocks for b in bottlenecks] == sorted(
            (b.transitive_blocks for b in bottlenecks), reverse=True)

    def test_configurable_limit(self):
        """Test the configured bottleneck limit."""
        nodes = make_nodes(*range(1, 7))
        edges = open_edges((1, 2), (3, 4), (5, 6))
        graph = DependencyGraph(nodes, edges, GraphConfig(bottleneck_limit=2))

        assert len(graph.find_bottlenecks()) == 2

    def test_explicit_zero_limit(self):
        """Test a limit of zero returns no entries instead of the default."""
        graph = DependencyGraph(make_nodes(1, 2, 3), open_edges((1, 2), (2, 3)))

        assert graph.find_bottlenecks(limit=0) == []
        assert len(graph.find_bottlenecks(limit=1)) == 1

    def test_resolved_items_are_not_bottlenecks(self):
        """Test closed and Done issues are skipped."""
        nodes = make_nodes(1, 2, 3, 4, closed=(1,), done=(3,))
        edges = build_edges(nodes, [(1, 2), (3, 4)])
        assert DependencyGraph(nodes, edges).find_bottlenecks() == []

    def test_transitive_never_below_direct(self):
        """Test transitive reach covers direct dependents, even through loops."""
        nodes = make_nodes(*range(1, 9))
        edges = open_edges((1, 2), (1, 3), (2, 3), (3, 4), (4, 1), (5, 6), (5, 7), (7, 8))
        for entry in DependencyGraph(nodes, edges).find_bottlenecks():
            assert entry.transitive_blocks >= entry.direct_blocks

    def test_transitive_dependents_exclude_start(self):
        """Test the starting issue is not its own dependent."""
        graph = DependencyGraph(make_nodes(1, 2, 3), open_edges((1, 2), (2, 3), (3, 1)))
        assert sorted(graph.get_transitive_dependents(1)) == [2, 3]
        assert graph.get_transitive_dependents(42) == []

    def test_transitive_dependents_preorder(self):
        """Test dependents come back in depth-first preorder."""
        graph = DependencyGraph(make_nodes(1, 3, 5, 6), open_edges((1, 3), (1, 6), (3, 5)))
        assert graph.get_transitive_dependents(1) == [3, 5, 6]


class TestOrphanedBlocked:
    """Test detection of items still marked blocked by resolved work."""

    def test_orphaned_detection(self):
        """Test only issues whose known blockers are all resolved qualify."""
        nodes = make_nodes(1, 2, 3, 4, 5, 6, 7, closed=(1, 6), done=(7,))
        edges = build_edges(nodes, [
            (1, 2),            # only blocker closed: orphaned
            (1, 3), (4, 3),    # one blocker still open
            (99, 5),           # blocker unknown
            (1, 6),            # blocked item itself closed
            (7, 4),            # blocker in terminal column: orphaned
        ])
        orphaned = DependencyGraph(nodes, edges).find_orphaned_blocked()

        assert [o.node_id for o in orphaned] == [2, 4]
        assert orphaned[0].blocked_by == [1]

    def test_unblocked_items_are_not_orphaned(self):
        """Test issues without blockers are never reported."""
        assert DependencyGraph(make_nodes(1, 2), []).find_orphaned_blocked() == []


class TestComponentsAndMetrics:
    """Test connectivity and network metrics."""

    def test_connected_components(self):
        """Test components are sorted largest first and skip isolated issues."""
        graph = DependencyGraph(make_nodes(1, 2, 3, 4, 5, 6), open_edges((1, 2), (3, 4), (4, 5)))
        assert graph.find_connected_components() == [[3, 4, 5], [1, 2]]

    def test_chain_metrics(self):
        """Test metrics for a three-issue chain."""
        metrics = DependencyGraph(make_nodes(1, 2, 3), open_edges((1, 2), (2, 3))).network_metrics()

        assert metrics.max_depth == 2
        assert metrics.avg_degree == 1.3
        assert metrics.density == 0.3333
        assert metrics.connected_components == 1
        assert metrics.largest_component == 3

    def test_density_guard_for_single_node(self):
        """Test density is zero with a single connected issue."""
        metrics = DependencyGraph(make_nodes(1), open_edges((1, 1))).network_metrics()
        assert metrics.density == 0.0

    def test_empty_graph(self):
        """Test analysis of an empty snapshot."""
        result = DependencyGraph([], []).analyze()

        assert result.total_issues == 0
        assert result.metrics.max_depth == 0
        assert result.metrics.avg_degree == 0.0
        assert result.metrics.largest_component == 0

    def test_node_metrics_sorted_by_out_degree(self):
        """Test per-issue metrics list the biggest blockers first."""
        graph = DependencyGraph(make_nodes(1, 2, 3, 4), open_edges((2, 1), (2, 3), (3, 4)))
        metrics = graph.node_metrics()

        assert metrics[0].node_id == 2
        assert metrics[0].out_degree == 2
        assert all(m.node_id != 5 for m in metrics)


class TestAnalyze:
    """Test the combined analysis result."""

    def test_analyze_scenario(self):
        """Test the full analysis of a simple chain."""
        graph = DependencyGraph(make_nodes(1, 2, 3), open_edges((1, 2), (2, 3)))
        result = graph.analyze()

        assert result.critical_path.node_ids == [1, 2, 3]
        assert result.bottlenecks[0].transitive_blocks == 2
        assert result.cycles == []

    def test_to_dict_is_plain_data(self):
        """Test the result serializes to JSON."""
        import json

        graph = DependencyGraph(make_nodes(1, 2, 3), open_edges((1, 2), (2, 3), (3, 1)))
        data = graph.analyze().to_dict()

        json.dumps(data)
        assert data['total_edges'] == 3
        assert len(data['cycles']) == 1
        assert data['metrics']['connected_components'] == 1

    def test_analysis_is_repeatable(self):
        """Test analyzing twice gives the same result."""
        graph = DependencyGraph(make_nodes(1, 2, 3, 4), open_edges((1, 2), (2, 3), (1, 4)))
        assert graph.analyze().to_dict() == graph.analyze().to_dict()
