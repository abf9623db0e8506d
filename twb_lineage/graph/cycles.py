"""Circular dependency detection over a finished lineage graph."""

import logging
from typing import Any, Dict, List, Mapping, Union

from ..models.graph_models import Graph

logger = logging.getLogger(__name__)


def _adjacency(graph: Union[Graph, Mapping[str, Any]]) -> Dict[str, List[str]]:
    if isinstance(graph, Graph):
        node_ids = [n.id for n in graph.nodes]
        pairs = [(e.source, e.target) for e in graph.edges]
    else:
        node_ids = [n.get("id") for n in graph.get("nodes") or [] if isinstance(n, Mapping)]
        pairs = [
            (e.get("source"), e.get("target"))
            for e in graph.get("edges") or []
            if isinstance(e, Mapping)
        ]

    adjacency: Dict[str, List[str]] = {}
    for node_id in node_ids:
        if node_id:
            adjacency.setdefault(node_id, [])
    for source, target in pairs:
        if source in adjacency and target in adjacency:
            adjacency[source].append(target)
    return adjacency


def detect_cycles(graph: Union[Graph, Mapping[str, Any]]) -> List[List[str]]:
    """
    Find circular dependencies.

    Runs a depth-first search from every unvisited node. When an edge leads
    back to a node on the active path, the path from that node onward is one
    cycle; the start id is repeated at the end, e.g. ``["a", "b", "c", "a"]``.
    Edges whose endpoints are not nodes are ignored. The input is not modified.

    Args:
        graph: A Graph, or a mapping with ``nodes`` and ``edges`` lists

    Returns:
        List of cycles, each an ordered list of node ids
    """
    adjacency = _adjacency(graph)
    visited = set()
    cycles: List[List[str]] = []

    for start in adjacency:
        if start in visited:
            continue

        path: List[str] = [start]
        on_path = {start: 0}
        visited.add(start)
        stack = [iter(adjacency[start])]

        while stack:
            neighbor = next(stack[-1], None)
            if neighbor is None:
                stack.pop()
                del on_path[path.pop()]
                continue
            if neighbor in on_path:
                cycles.append(path[on_path[neighbor]:] + [neighbor])
            elif neighbor not in visited:
                visited.add(neighbor)
                on_path[neighbor] = len(path)
                path.append(neighbor)
                stack.append(iter(adjacency[neighbor]))

    if cycles:
        logger.debug("Found %d cycle(s)", len(cycles))
    return cycles
