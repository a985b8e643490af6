"""Graph and history providers: where the engines get their input from."""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Union

import yaml

from .constants import DEFAULT_TERMINAL_LABELS
from .models import (
    CompletionRecord, DependencyEdge, GraphNode, GraphSnapshot, ProviderError, build_edges,
)
from .utils import logger


class GraphDataProvider(Protocol):
    def get_graph_snapshot(self) -> GraphSnapshot:
        ...


class HistoryProvider(Protocol):
    def get_completion_records(self) -> List[CompletionRecord]:
        ...


class StaticGraphProvider:
    """Serves a snapshot that is already in memory."""

    def __init__(self, snapshot: GraphSnapshot):
        self.snapshot = snapshot

    def get_graph_snapshot(self) -> GraphSnapshot:
        return self.snapshot


class StaticHistoryProvider:
    def __init__(self, records: Iterable[CompletionRecord]):
        self.records = list(records)

    def get_completion_records(self) -> List[CompletionRecord]:
        return list(self.records)


def load_document(path: Union[str, Path]) -> Any:
    """Read a JSON or YAML document, chosen by file extension."""
    path = Path(path)
    try:
        with open(path, 'r') as f:
            if path.suffix in ['.yaml', '.yml']:
                return yaml.safe_load(f)
            return json.load(f)
    except OSError as e:
        raise ProviderError(f"Cannot read {path}: {e}") from e
    except (ValueError, yaml.YAMLError) as e:
        raise ProviderError(f"Cannot parse {path}: {e}") from e


def _parse_node(data: Dict[str, Any]) -> GraphNode:
    if 'is_open' in data:
        is_open = bool(data['is_open'])
    else:
        is_open = str(data.get('state', 'OPEN')).upper() == 'OPEN'

    labels = data.get('labels') or []
    # Accept the issue-tracker shape [{"name": "..."}] as well as plain strings
    labels = [l['name'] if isinstance(l, dict) else l for l in labels]

    return GraphNode(
        id=int(data.get('id', data.get('number'))),
        title=str(data.get('title', '')),
        is_open=is_open,
        workflow_label=data.get('workflow_label', data.get('workflow')),
        labels=frozenset(labels),
    )


def _parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', 'false'):
        return value.strip().lower() == 'true'
    raise ProviderError(f"Edge 'resolved' must be true or false, got {value!r}")


def parse_snapshot(document: Dict[str, Any],
                   terminal_labels: Iterable[str] = DEFAULT_TERMINAL_LABELS) -> GraphSnapshot:
    """Build a snapshot from ``{"nodes": [...], "edges": [...]}``.

    Edges without an explicit ``resolved`` flag get one derived from the
    blocker's state.
    """
    if not isinstance(document, dict):
        raise ProviderError("Graph snapshot must be a mapping with 'nodes' and 'edges'")

    try:
        nodes = [_parse_node(n) for n in document.get('nodes') or []]
        edges = []
        for raw in document.get('edges') or []:
            from_id = int(raw.get('from', raw.get('from_id')))
            to_id = int(raw.get('to', raw.get('to_id')))
            kind = raw.get('kind', raw.get('type', 'reference'))
            if 'resolved' in raw:
                edges.append(DependencyEdge(from_id, to_id, _parse_flag(raw['resolved']), kind))
            else:
                edges.extend(build_edges(nodes, [(from_id, to_id)], terminal_labels, kind))
    except (TypeError, ValueError, KeyError, AttributeError) as e:
        raise ProviderError(f"Malformed graph snapshot: {e}") from e

    return GraphSnapshot(nodes=nodes, edges=edges)


def parse_history(document: Any) -> List[CompletionRecord]:
    """Build records from ``{"records": [...]}`` or a bare list."""
    rows = document.get('records', []) if isinstance(document, dict) else document
    if not isinstance(rows, list):
        raise ProviderError("History must be a list of records")

    records = []
    try:
        for row in rows:
            duration = row.get('duration_days', row.get('completed_duration_days'))
            records.append(CompletionRecord(
                issue_id=int(row.get('issue_id', row.get('issue_number', 0))),
                duration_days=float(duration) if duration is not None else None,
                area=row.get('area'),
            ))
    except (TypeError, ValueError, AttributeError) as e:
        raise ProviderError(f"Malformed history record: {e}") from e

    return records


class FileGraphProvider:
    """Reads a graph snapshot from a JSON or YAML file."""

    def __init__(self, path: Union[str, Path],
                 terminal_labels: Optional[Iterable[str]] = None):
        self.path = Path(path)
        self.terminal_labels = list(terminal_labels or DEFAULT_TERMINAL_LABELS)

    def get_graph_snapshot(self) -> GraphSnapshot:
        snapshot = parse_snapshot(load_document(self.path), self.terminal_labels)
        logger.debug(f"Loaded {len(snapshot.nodes)} nodes, {len(snapshot.edges)} edges from {self.path}")
        return snapshot


class FileHistoryProvider:
    """Reads completion records from a JSON or YAML file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def get_completion_records(self) -> List[CompletionRecord]:
        records = parse_history(load_document(self.path))
        logger.debug(f"Loaded {len(records)} completion records from {self.path}")
        return records
