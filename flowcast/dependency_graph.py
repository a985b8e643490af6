"""Issue dependency graph analysis: cycles, depths, critical path, bottlenecks."""
import networkx as nx
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Iterable, Set, Union

from .config import GraphConfig
from .models import GraphNode, DependencyEdge, GraphSnapshot, NotFound
from .stats import round_half_up
from .utils import logger

WHITE, GRAY, BLACK = 0, 1, 2

# Marks an exhausted neighbour iterator; node ids may legitimately be 0
_DONE = object()


@dataclass
class Cycle:
    """A loop of blocking relationships."""
    node_ids: List[int]

    @property
    def description(self) -> str:
        chain = " -> ".join(f"#{n}" for n in self.node_ids)
        return f"Circular dependency: {chain} -> #{self.node_ids[0]}"

    def to_dict(self) -> Dict[str, Any]:
        return {'issues': list(self.node_ids), 'description': self.description}


@dataclass
class CriticalPath:
    """Longest chain of unresolved dependencies among open items."""
    node_ids: List[int] = field(default_factory=list)
    titles: List[str] = field(default_factory=list)

    @property
    def length(self) -> int:
        return len(self.node_ids)

    @property
    def description(self) -> str:
        if not self.node_ids:
            return "No unresolved dependency chains found"
        chain = " -> ".join(f"#{n}" for n in self.node_ids)
        return f"Critical chain: {chain} ({self.length} issues deep)"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'length': self.length,
            'issues': [
                {'number': n, 'title': t} for n, t in zip(self.node_ids, self.titles)
            ],
            'description': self.description,
        }


@dataclass
class BottleneckEntry:
    """An open item ranked by how much work it holds up."""
    node_id: int
    title: str
    workflow_label: Optional[str]
    direct_blocks: int
    transitive_blocks: int
    severity: str  # critical, high, medium

    @property
    def recommendation(self) -> str:
        if self.severity == "critical":
            return f"CRITICAL: Unblocks {self.transitive_blocks} issues. Prioritize immediately."
        if self.severity == "high":
            return f"HIGH: Unblocks {self.transitive_blocks} issues. Address this sprint."
        return f"MEDIUM: Blocks {self.direct_blocks} direct dependencies."

    def to_dict(self) -> Dict[str, Any]:
        return {
            'number': self.node_id,
            'title': self.title,
            'workflow': self.workflow_label,
            'blocks_count': self.direct_blocks,
            'transitive_blocks_count': self.transitive_blocks,
            'severity': self.severity,
            'recommendation': self.recommendation,
        }


@dataclass
class OrphanedBlocked:
    """An open item still waiting on blockers that are all resolved."""
    node_id: int
    title: str
    blocked_by: List[int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'number': self.node_id,
            'title': self.title,
            'blocked_by': list(self.blocked_by),
            'recommendation': 'All blockers resolved: remove the "blocked" label and move to Ready/Active',
        }


@dataclass
class NodeMetrics:
    node_id: int
    title: str
    is_open: bool
    workflow_label: Optional[str]
    in_degree: int
    out_degree: int
    depth: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'number': self.node_id,
            'title': self.title,
            'state': 'OPEN' if self.is_open else 'CLOSED',
            'workflow': self.workflow_label,
            'in_degree': self.in_degree,
            'out_degree': self.out_degree,
            'depth': self.depth,
        }


@dataclass
class NetworkMetrics:
    max_depth: int = 0
    avg_degree: float = 0.0
    density: float = 0.0
    connected_components: int = 0
    largest_component: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'max_depth': self.max_depth,
            'avg_degree': self.avg_degree,
            'density': self.density,
            'connected_components': self.connected_components,
            'largest_component': self.largest_component,
        }


@dataclass
class GraphAnalysisResult:
    """Everything the analyzer knows about one snapshot."""
    total_issues: int
    total_edges: int
    connected_issues: int
    nodes: List[NodeMetrics]
    edges: List[DependencyEdge]
    critical_path: CriticalPath
    bottlenecks: List[BottleneckEntry]
    cycles: List[Cycle]
    orphaned_blocked: List[OrphanedBlocked]
    components: List[List[int]]
    metrics: NetworkMetrics

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'total_issues': self.total_issues,
            'total_edges': self.total_edges,
            'connected_issues': self.connected_issues,
            'nodes': [n.to_dict() for n in self.nodes],
            'edges': [e.to_dict() for e in self.edges],
            'critical_path': self.critical_path.to_dict(),
            'bottlenecks': [b.to_dict() for b in self.bottlenecks],
            'cycles': [c.to_dict() for c in self.cycles],
            'orphaned_blocked': [o.to_dict() for o in self.orphaned_blocked],
            'components': [list(c) for c in self.components],
            'metrics': self.metrics.to_dict(),
        }


@dataclass
class DependencyRef:
    """A neighbour of the inspected issue; missing ids show up as closed."""
    node_id: int
    title: str
    is_open: bool
    workflow_label: Optional[str]
    resolved: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'number': self.node_id,
            'title': self.title,
            'state': 'OPEN' if self.is_open else 'CLOSED',
            'workflow': self.workflow_label,
            'resolved': self.resolved,
        }


@dataclass
class IssueDependencyView:
    """Upstream and downstream picture for a single issue."""
    node_id: int
    title: str
    is_open: bool
    workflow_label: Optional[str]
    blocked_by: List[DependencyRef]
    blocks: List[DependencyRef]
    upstream_chain: List[int]
    downstream_chain: List[int]
    is_unblocked: bool
    execution_order: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'issue_number': self.node_id,
            'title': self.title,
            'state': 'OPEN' if self.is_open else 'CLOSED',
            'workflow': self.workflow_label,
            'blocked_by': [r.to_dict() for r in self.blocked_by],
            'blocks': [r.to_dict() for r in self.blocks],
            'upstream_chain': list(self.upstream_chain),
            'downstream_chain': list(self.downstream_chain),
            'is_unblocked': self.is_unblocked,
            'execution_order': self.execution_order,
        }


class DependencyGraph:
    """Blocking relationships between work items.

    Edges point from blocker to blocked item. Edge endpoints that are not in
    the node list are kept as unknown vertices: they count for connectivity,
    are treated as resolved, and never start a traversal of their own.
    All traversals use explicit stacks.
    """

    def __init__(self, nodes: Iterable[GraphNode], edges: Iterable[DependencyEdge],
                 config: Optional[GraphConfig] = None):
        self.config = config or GraphConfig()
        self._terminal = set(self.config.terminal_labels)
        self.graph = nx.DiGraph()
        self.nodes: Dict[int, GraphNode] = {}
        self.edges: List[DependencyEdge] = []

        for node in nodes:
            if node.id in self.nodes:
                logger.debug(f"Ignoring duplicate node #{node.id}")
                continue
            self.nodes[node.id] = node
            self.graph.add_node(node.id, known=True)

        for edge in edges:
            if self.graph.has_edge(edge.from_id, edge.to_id):
                logger.debug(f"Ignoring duplicate edge #{edge.from_id} -> #{edge.to_id}")
                continue
            for endpoint in (edge.from_id, edge.to_id):
                if endpoint not in self.graph:
                    self.graph.add_node(endpoint, known=False)
            self.graph.add_edge(edge.from_id, edge.to_id, resolved=edge.resolved, kind=edge.kind)
            self.edges.append(edge)

        logger.debug(f"Built dependency graph: {len(self.nodes)} issues, {len(self.edges)} edges")

    @classmethod
    def from_snapshot(cls, snapshot: GraphSnapshot,
                      config: Optional[GraphConfig] = None) -> 'DependencyGraph':
        return cls(snapshot.nodes, snapshot.edges, config=config)

    # ─── Adjacency helpers ──────────────────────────────────

    def blockers_of(self, node_id: int) -> List[int]:
        """Ids that block ``node_id`` (its blocked-by set)."""
        if node_id not in self.graph:
            return []
        return list(self.graph.predecessors(node_id))

    def blocked_by(self, node_id: int) -> List[int]:
        """Ids that ``node_id`` blocks."""
        if node_id not in self.graph:
            return []
        return list(self.graph.successors(node_id))

    def is_resolved(self, node_id: int) -> bool:
        node = self.nodes.get(node_id)
        return node.is_resolved(self._terminal) if node else True

    def is_active(self, node_id: int) -> bool:
        node = self.nodes.get(node_id)
        return node is not None and node.is_active(self._terminal)

    def _title(self, node_id: int) -> str:
        node = self.nodes.get(node_id)
        return node.title if node else f"Issue #{node_id}"

    # ─── Analysis ───────────────────────────────────────────

    def detect_cycles(self) -> List[Cycle]:
        """Find loops with a three-colour DFS over the blocked-by adjacency.

        The same loop is reported once whichever member the search enters it
        from; cycles are keyed by their sorted member ids.
        """
        color = {node_id: WHITE for node_id in self.nodes}
        found: List[List[int]] = []

        for root in self.nodes:
            if color[root] != WHITE:
                continue

            color[root] = GRAY
            path = [root]
            stack = [iter(self.blockers_of(root))]

            while stack:
                nxt = next(stack[-1], _DONE)
                if nxt is _DONE:
                    stack.pop()
                    color[path.pop()] = BLACK
                    continue

                state = color.get(nxt)
                if state == GRAY:
                    found.append(path[path.index(nxt):])
                elif state == WHITE:
                    color[nxt] = GRAY
                    path.append(nxt)
                    stack.append(iter(self.blockers_of(nxt)))

        seen: Set[tuple] = set()
        cycles = []
        for members in found:
            key = tuple(sorted(members))
            if key in seen:
                continue
            seen.add(key)
            cycles.append(Cycle(members))

        if cycles:
            logger.warning(f"Detected {len(cycles)} circular dependencies")
        return cycles

    def calculate_depths(self) -> Dict[int, int]:
        """Longest chain of blockers above each known node.

        A blocker that is already on the path being explored contributes as if
        it had depth 0, which keeps cyclic input finite.
        """
        depths: Dict[int, int] = {}

        for root in self.nodes:
            if root in depths:
                continue

            on_path = {root}
            best = {root: 0}
            stack = [(root, iter(self._known_blockers(root)))]

            while stack:
                node, parents = stack[-1]
                parent = next(parents, _DONE)

                if parent is _DONE:
                    stack.pop()
                    on_path.discard(node)
                    depths[node] = best.pop(node)
                    if stack:
                        caller = stack[-1][0]
                        best[caller] = max(best[caller], depths[node] + 1)
                    continue

                if parent in depths:
                    best[node] = max(best[node], depths[parent] + 1)
                elif parent in on_path:
                    best[node] = max(best[node], 1)
                else:
                    on_path.add(parent)
                    best[parent] = 0
                    stack.append((parent, iter(self._known_blockers(parent))))

        return depths

    def _known_blockers(self, node_id: int) -> List[int]:
        return [b for b in self.blockers_of(node_id) if b in self.nodes]

    def find_critical_path(self) -> CriticalPath:
        """Longest simple chain of unresolved edges between open items.

        Exhaustive search from every root; when every open item in the
        unresolved subgraph has a blocker (a cycle), every item with an
        outgoing unresolved edge is tried instead. The first maximal chain
        found wins, so ties depend on node and edge order.
        """
        adjacency: Dict[int, List[int]] = {}
        has_blocker: Set[int] = set()

        for edge in self.edges:
            if edge.resolved:
                continue
            if self.is_active(edge.from_id) and self.is_active(edge.to_id):
                adjacency.setdefault(edge.from_id, []).append(edge.to_id)
                has_blocker.add(edge.to_id)

        if not adjacency:
            return CriticalPath()

        roots = [
            node_id for node_id in self.nodes
            if self.is_active(node_id) and node_id not in has_blocker
        ]
        start_points = roots if roots else list(adjacency)

        longest: List[int] = []
        for start in start_points:
            longest = self._longest_chain_from(start, adjacency, longest)

        logger.debug(f"Critical path length: {len(longest)}")
        return CriticalPath(longest, [self._title(n) for n in longest])

    @staticmethod
    def _longest_chain_from(start: int, adjacency: Dict[int, List[int]],
                            longest: List[int]) -> List[int]:
        path = [start]
        on_path = {start}
        stack = [iter(adjacency.get(start, ()))]

        if len(path) > len(longest):
            longest = list(path)

        while stack:
            nxt = next(stack[-1], _DONE)
            if nxt is _DONE:
                stack.pop()
                on_path.discard(path.pop())
                continue
            if nxt in on_path:
                continue

            path.append(nxt)
            on_path.add(nxt)
            stack.append(iter(adjacency.get(nxt, ())))
            if len(path) > len(longest):
                longest = list(path)

        return longest

    def get_transitive_dependents(self, node_id: int) -> List[int]:
        """All ids reachable by following "blocks" edges, excluding ``node_id``."""
        if node_id not in self.graph:
            return []
        return [n for n in nx.dfs_preorder_nodes(self.graph, node_id) if n != node_id]

    def _upstream_chain(self, node_id: int) -> List[int]:
        """Transitive blockers in depth-first preorder."""
        visited = {node_id}
        chain = []
        stack = [iter(self.blockers_of(node_id))]

        while stack:
            nxt = next(stack[-1], _DONE)
            if nxt is _DONE:
                stack.pop()
                continue
            if nxt in visited:
                continue
            visited.add(nxt)
            chain.append(nxt)
            if nxt in self.nodes:
                stack.append(iter(self.blockers_of(nxt)))

        return chain

    def _severity(self, transitive: int) -> str:
        if transitive >= self.config.critical_threshold:
            return "critical"
        if transitive >= self.config.high_threshold:
            return "high"
        return "medium"

    def find_bottlenecks(self, limit: Optional[int] = None) -> List[BottleneckEntry]:
        """Open items that block others, ranked by transitive reach."""
        if limit is None:
            limit = self.config.bottleneck_limit
        entries = []

        for node_id, node in self.nodes.items():
            direct = self.graph.out_degree(node_id)
            if direct == 0 or not node.is_active(self._terminal):
                continue

            transitive = len(self.get_transitive_dependents(node_id))
            entries.append(BottleneckEntry(
                node_id=node_id,
                title=node.title,
                workflow_label=node.workflow_label,
                direct_blocks=direct,
                transitive_blocks=transitive,
                severity=self._severity(transitive),
            ))

        entries.sort(key=lambda e: e.transitive_blocks, reverse=True)
        return entries[:limit]

    def find_orphaned_blocked(self) -> List[OrphanedBlocked]:
        """Open items whose blockers are all known and resolved."""
        orphaned = []

        for node_id, node in self.nodes.items():
            if not node.is_open:
                continue
            blockers = self.blockers_of(node_id)
            if not blockers:
                continue
            if all(b in self.nodes and self.nodes[b].is_resolved(self._terminal) for b in blockers):
                orphaned.append(OrphanedBlocked(node_id, node.title, blockers))

        return orphaned

    def find_connected_components(self) -> List[List[int]]:
        """Weakly connected groups of ids that take part in at least one edge."""
        linked = self.graph.subgraph(
            [n for n in self.graph.nodes if self.graph.degree(n) > 0]
        )
        components = [sorted(c) for c in nx.weakly_connected_components(linked)]
        components.sort(key=lambda c: (-len(c), c[0]))
        return components

    def network_metrics(self, depths: Optional[Dict[int, int]] = None,
                        components: Optional[List[List[int]]] = None) -> NetworkMetrics:
        depths = self.calculate_depths() if depths is None else depths
        components = self.find_connected_components() if components is None else components

        connected = [n for n in self.graph.nodes if self.graph.degree(n) > 0]
        n = len(connected)
        total_degree = sum(self.graph.degree(node_id) for node_id in connected)
        possible_edges = n * (n - 1)

        return NetworkMetrics(
            max_depth=max(depths.values(), default=0),
            avg_degree=round_half_up(total_degree / n, 1) if n > 0 else 0.0,
            density=round_half_up(len(self.edges) / possible_edges, 4) if n > 1 else 0.0,
            connected_components=len(components),
            largest_component=max((len(c) for c in components), default=0),
        )

    def node_metrics(self, depths: Optional[Dict[int, int]] = None) -> List[NodeMetrics]:
        """Per-item degrees and depth for known items with any edge, most blocking first."""
        depths = self.calculate_depths() if depths is None else depths
        metrics = []

        for node_id, node in self.nodes.items():
            if self.graph.degree(node_id) == 0:
                continue
            metrics.append(NodeMetrics(
                node_id=node_id,
                title=node.title,
                is_open=node.is_open,
                workflow_label=node.workflow_label,
                in_degree=self.graph.in_degree(node_id),
                out_degree=self.graph.out_degree(node_id),
                depth=depths.get(node_id, 0),
            ))

        metrics.sort(key=lambda m: m.out_degree, reverse=True)
        return metrics

    def analyze(self) -> GraphAnalysisResult:
        """Run every analysis over the snapshot."""
        depths = self.calculate_depths()
        components = self.find_connected_components()
        connected = sum(1 for n in self.graph.nodes if self.graph.degree(n) > 0)

        result = GraphAnalysisResult(
            total_issues=len(self.nodes),
            total_edges=len(self.edges),
            connected_issues=connected,
            nodes=self.node_metrics(depths),
            edges=list(self.edges),
            critical_path=self.find_critical_path(),
            bottlenecks=self.find_bottlenecks(),
            cycles=self.detect_cycles(),
            orphaned_blocked=self.find_orphaned_blocked(),
            components=components,
            metrics=self.network_metrics(depths, components),
        )

        logger.info(
            f"Analyzed {result.total_issues} issues: {result.total_edges} edges, "
            f"critical path {result.critical_path.length}, "
            f"{len(result.bottlenecks)} bottlenecks, {len(result.cycles)} cycles"
        )
        return result

    def get_issue_dependencies(self, node_id: int) -> Union[IssueDependencyView, NotFound]:
        """Blockers, dependents and readiness of one issue."""
        target = self.nodes.get(node_id)
        if target is None:
            return NotFound(node_id)

        blocked_by = [self._ref(b, resolved=self.is_resolved(b)) for b in self.blockers_of(node_id)]
        blocks = [self._ref(d, resolved=self.is_resolved(d)) for d in self.blocked_by(node_id)]
        upstream = self._upstream_chain(node_id)
        unresolved_upstream = [n for n in upstream if self.is_active(n)]

        return IssueDependencyView(
            node_id=node_id,
            title=target.title,
            is_open=target.is_open,
            workflow_label=target.workflow_label,
            blocked_by=blocked_by,
            blocks=blocks,
            upstream_chain=upstream,
            downstream_chain=self.get_transitive_dependents(node_id),
            is_unblocked=all(ref.resolved for ref in blocked_by),
            execution_order=len(unresolved_upstream) + 1,
        )

    def _ref(self, node_id: int, resolved: bool) -> DependencyRef:
        node = self.nodes.get(node_id)
        return DependencyRef(
            node_id=node_id,
            title=node.title if node else f"Issue #{node_id}",
            is_open=node.is_open if node else False,
            workflow_label=node.workflow_label if node else None,
            resolved=resolved,
        )
