"""Value types shared by the dependency graph analyzer and the forecasting engine."""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .constants import DEFAULT_TERMINAL_LABELS, MIN_CYCLE_TIME_DAYS, MAX_CYCLE_TIME_DAYS


class FlowcastError(Exception):
    """Base class for flowcast errors."""


class ProviderError(FlowcastError):
    """A graph or history provider could not produce its data."""


@dataclass(frozen=True)
class GraphNode:
    """A work item in a dependency snapshot."""
    id: int
    title: str
    is_open: bool = True
    workflow_label: Optional[str] = None
    labels: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        # Accept any iterable of labels but store an immutable set
        if not isinstance(self.labels, frozenset):
            object.__setattr__(self, 'labels', frozenset(self.labels or ()))

    def is_terminal(self, terminal_labels: Iterable[str] = DEFAULT_TERMINAL_LABELS) -> bool:
        return self.workflow_label is not None and self.workflow_label in set(terminal_labels)

    def is_resolved(self, terminal_labels: Iterable[str] = DEFAULT_TERMINAL_LABELS) -> bool:
        """Closed, or parked in a terminal workflow column."""
        return not self.is_open or self.is_terminal(terminal_labels)

    def is_active(self, terminal_labels: Iterable[str] = DEFAULT_TERMINAL_LABELS) -> bool:
        return not self.is_resolved(terminal_labels)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'is_open': self.is_open,
            'workflow_label': self.workflow_label,
            'labels': sorted(self.labels),
        }


@dataclass(frozen=True)
class DependencyEdge:
    """``from_id`` blocks ``to_id``."""
    from_id: int
    to_id: int
    resolved: bool = False
    kind: str = "reference"  # label, reference, comment

    def to_dict(self) -> Dict[str, Any]:
        return {
            'from': self.from_id,
            'to': self.to_id,
            'resolved': self.resolved,
            'kind': self.kind,
        }


def build_edges(nodes: Iterable[GraphNode],
                links: Iterable[Tuple[int, int]],
                terminal_labels: Iterable[str] = DEFAULT_TERMINAL_LABELS,
                kind: str = "reference") -> List[DependencyEdge]:
    """Turn ``(blocker, blocked)`` pairs into edges with ``resolved`` derived.

    A blocker missing from ``nodes`` is treated as already resolved.
    """
    terminal = set(terminal_labels)
    by_id = {node.id: node for node in nodes}
    edges = []

    for blocker_id, blocked_id in links:
        blocker = by_id.get(blocker_id)
        resolved = blocker.is_resolved(terminal) if blocker else True
        edges.append(DependencyEdge(blocker_id, blocked_id, resolved=resolved, kind=kind))

    return edges


@dataclass(frozen=True)
class GraphSnapshot:
    """What a graph data provider hands to the analyzer."""
    nodes: Tuple[GraphNode, ...] = ()
    edges: Tuple[DependencyEdge, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'nodes', tuple(self.nodes))
        object.__setattr__(self, 'edges', tuple(self.edges))


@dataclass(frozen=True)
class CompletionRecord:
    """Raw history record; ``duration_days`` is not validated here."""
    issue_id: int
    duration_days: float
    area: Optional[str] = None


def is_valid_cycle_time(days: float,
                        min_days: float = MIN_CYCLE_TIME_DAYS,
                        max_days: float = MAX_CYCLE_TIME_DAYS) -> bool:
    return days is not None and min_days < days < max_days


@dataclass(frozen=True)
class CycleTimeSample:
    """One historical completion duration, in days."""
    days: float

    def __post_init__(self):
        if not is_valid_cycle_time(self.days):
            raise ValueError(
                f"Cycle time must be within ({MIN_CYCLE_TIME_DAYS:g}, "
                f"{MAX_CYCLE_TIME_DAYS:g}) days, got {self.days!r}"
            )


@dataclass(frozen=True)
class NotFound:
    """Lookup outcome for an id absent from the supplied graph."""
    node_id: int

    @property
    def message(self) -> str:
        return f"Issue #{self.node_id} not found"

    def __bool__(self):
        return False
