"""
Defensive repair of graph-shaped payloads.

Both freshly built graphs and externally supplied JSON pass through
``normalize_graph`` before anything traverses them. Bad nodes and edges are
dropped one at a time with a diagnostic; the rest of the graph survives.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set, Union

from pydantic import BaseModel, ValidationError

from ..models.graph_models import Graph, GraphEdge, GraphNode, NodeType
from ..utils.validation import Diagnostics, IssueCategory

logger = logging.getLogger(__name__)

GraphPayload = Union[Graph, Mapping[str, Any], None]


def _as_dict(item: Any) -> Optional[Dict[str, Any]]:
    """Flatten a model or mapping; a cytoscape-style ``data`` dict wins."""
    if isinstance(item, BaseModel):
        return item.model_dump(by_alias=True)
    if not isinstance(item, Mapping):
        return None
    flat = {k: v for k, v in item.items() if k != "data"}
    data = item.get("data")
    if isinstance(data, Mapping):
        flat.update(data)
    return flat


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Enum):
        value = value.value
    return str(value).strip()


def _attribute_keys(names: List[str]) -> Set[str]:
    """Payload keys for the given attributes, by field name and by alias."""
    keys = set(names)
    for field_name, info in GraphNode.model_fields.items():
        aliases = {field_name, info.alias or field_name}
        if aliases & keys:
            keys |= aliases
    return keys


def _normalize_nodes(raw_nodes: List[Any], diagnostics: Diagnostics) -> List[GraphNode]:
    nodes: List[GraphNode] = []
    seen: Set[str] = set()

    for position, item in enumerate(raw_nodes):
        raw = _as_dict(item)
        if raw is None:
            diagnostics.add(
                IssueCategory.INVALID_NODE, position,
                f"Dropped node #{position}: not an object",
            )
            continue

        node_id = _text(raw.get("id"))
        if not node_id:
            diagnostics.add(
                IssueCategory.MISSING_ID, position,
                f"Dropped node #{position}: missing id",
                suggestion="Every node needs a non-empty id",
            )
            continue
        if node_id in seen:
            diagnostics.add(
                IssueCategory.DUPLICATE_ID, node_id,
                f"Dropped duplicate node '{node_id}'",
            )
            continue

        raw["id"] = node_id
        raw["name"] = _text(raw.get("name")) or node_id
        raw["type"] = NodeType.coerce(raw.get("type") or NodeType.UNKNOWN)

        try:
            node = GraphNode.model_validate(raw)
        except ValidationError as e:
            bad = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            for key in _attribute_keys(bad):
                raw.pop(key, None)
            diagnostics.add(
                IssueCategory.INVALID_NODE, node_id,
                f"Discarded invalid attribute(s) of node '{node_id}': {', '.join(bad)}",
            )
            node = GraphNode.model_validate(raw)

        seen.add(node_id)
        nodes.append(node)

    return nodes


def _normalize_edges(
    raw_edges: List[Any],
    node_ids: Set[str],
    diagnostics: Diagnostics,
) -> List[GraphEdge]:
    edges: List[GraphEdge] = []
    used_ids: Set[str] = set()

    for position, item in enumerate(raw_edges):
        raw = _as_dict(item)
        if raw is None:
            diagnostics.add(
                IssueCategory.INVALID_EDGE, position,
                f"Dropped edge #{position}: not an object",
            )
            continue

        source = _text(raw.get("source"))
        target = _text(raw.get("target"))
        if not source or not target:
            diagnostics.add(
                IssueCategory.MISSING_ENDPOINT, position,
                f"Dropped edge #{position}: missing source or target",
            )
            continue
        if source not in node_ids or target not in node_ids:
            missing = source if source not in node_ids else target
            diagnostics.add(
                IssueCategory.DANGLING_EDGE, f"{source}->{target}",
                f"Dropped edge {source}->{target}: node '{missing}' does not exist",
            )
            continue

        rel = _text(raw.get("rel") or raw.get("label") or raw.get("type"))
        base_id = _text(raw.get("id")) or f"{source}->{target}"
        edge_id = base_id
        suffix = 2
        while edge_id in used_ids:
            edge_id = f"{base_id}#{suffix}"
            suffix += 1
        if edge_id != base_id:
            diagnostics.add(
                IssueCategory.DUPLICATE_EDGE_ID, base_id,
                f"Edge id '{base_id}' already used; renamed to '{edge_id}'",
            )

        used_ids.add(edge_id)
        edges.append(GraphEdge(id=edge_id, source=source, target=target, rel=rel))

    return edges


def normalize_graph(
    payload: GraphPayload,
    diagnostics: Optional[Diagnostics] = None,
) -> Graph:
    """
    Repair a graph payload so that traversal can rely on it.

    Guarantees on the result: node ids are unique and non-empty, every edge
    endpoint is a node, and edge ids are unique (``#2``, ``#3`` ... suffixes
    on collision). Unrecognised node types become ``Unknown``.

    Args:
        payload: A Graph, a mapping with ``nodes``/``edges`` lists, or None
        diagnostics: Collector for dropped items; a fresh one if omitted

    Returns:
        Graph: The normalized graph
    """
    if diagnostics is None:
        diagnostics = Diagnostics()

    if isinstance(payload, Graph):
        raw_nodes: List[Any] = list(payload.nodes)
        raw_edges: List[Any] = list(payload.edges)
    elif isinstance(payload, Mapping):
        raw_nodes = list(payload.get("nodes") or [])
        raw_edges = list(payload.get("edges") or [])
    else:
        if payload is not None:
            logger.warning("Graph payload of type %s ignored", type(payload).__name__)
        return Graph()

    before = len(diagnostics)
    nodes = _normalize_nodes(raw_nodes, diagnostics)
    edges = _normalize_edges(raw_edges, {n.id for n in nodes}, diagnostics)

    logger.debug(
        "Normalized graph: %d/%d nodes, %d/%d edges, %d issue(s)",
        len(nodes), len(raw_nodes), len(edges), len(raw_edges), len(diagnostics) - before,
    )
    return Graph(nodes=nodes, edges=edges)
