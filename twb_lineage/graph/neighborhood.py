"""
Bounded traversal over a normalized lineage graph.

Backs interactive exploration: N-hop neighborhoods around a node and BFS
ranks used for hierarchical and centred views.
"""

import logging
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

import networkx as nx

from ..config import Settings, get_settings
from ..models.graph_models import Graph, NodeType

logger = logging.getLogger(__name__)


def to_networkx(graph: Graph) -> nx.DiGraph:
    """Build a DiGraph with node types and edge relations as attributes."""
    G = nx.DiGraph()
    for node in graph.nodes:
        G.add_node(node.id, type=node.type.value, name=node.name)
    for edge in graph.edges:
        G.add_edge(edge.source, edge.target, rel=edge.rel, id=edge.id)
    return G


class NeighborhoodEngine:
    """
    Neighborhood expansion and ranking for one graph.

    Expansion results are memoized per ``(node_id, depth)``. Build a new
    engine (or call ``clear_cache``) whenever the graph is replaced.
    """

    def __init__(self, graph: Graph, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.graph = graph
        self.G = to_networkx(graph)
        self._order = [n.id for n in graph.nodes]
        self._cache: Dict[Tuple[str, int], FrozenSet[str]] = {}

    def _require(self, node_id: str):
        if node_id not in self.G:
            raise KeyError(f"Unknown node id: {node_id!r}")

    def clamp_depth(self, depth) -> int:
        """Clamp a requested hop count into ``[hop_min, hop_max]``."""
        try:
            requested = int(depth)
        except (TypeError, ValueError):
            logger.warning("Invalid depth %r, using %d", depth, self.settings.hop_min)
            return self.settings.hop_min
        clamped = min(max(self.settings.hop_min, requested), self.settings.hop_max)
        if clamped != requested:
            logger.warning("Depth clamped to %d from %d", clamped, requested)
        return clamped

    def clear_cache(self):
        """Drop all memoized neighborhoods."""
        self._cache.clear()

    def predecessors(self, node_id: str) -> List[str]:
        """Ids with an edge into ``node_id``."""
        self._require(node_id)
        return list(self.G.predecessors(node_id))

    def successors(self, node_id: str) -> List[str]:
        """Ids ``node_id`` has an edge to."""
        self._require(node_id)
        return list(self.G.successors(node_id))

    def closed_neighborhood(self, node_id: str) -> FrozenSet[str]:
        """The node plus every node directly connected to it, either direction."""
        self._require(node_id)
        hood = {node_id}
        hood.update(self.G.predecessors(node_id))
        hood.update(self.G.successors(node_id))
        return frozenset(hood)

    def _closed_neighborhood_of(self, ids: Iterable[str]) -> FrozenSet[str]:
        hood = set()
        for node_id in ids:
            hood.add(node_id)
            hood.update(self.G.predecessors(node_id))
            hood.update(self.G.successors(node_id))
        return frozenset(hood)

    def expand_neighborhood(self, node_id: str, depth: int = 1) -> FrozenSet[str]:
        """
        Everything within ``depth`` hops of ``node_id``, ignoring direction.

        Args:
            node_id: Center node
            depth: Hop count, clamped to ``[hop_min, hop_max]``

        Returns:
            frozenset of node ids, the center included

        Raises:
            KeyError: ``node_id`` is not in the graph
        """
        self._require(node_id)
        safe_depth = self.clamp_depth(depth)
        key = (node_id, safe_depth)
        if key in self._cache:
            return self._cache[key]

        hood = self.closed_neighborhood(node_id)
        iterations = 0
        for _ in range(1, safe_depth):
            iterations += 1
            if iterations > self.settings.max_iterations:
                logger.warning("Max iterations reached, stopping expansion at %s", node_id)
                break
            grown = self._closed_neighborhood_of(hood)
            if len(grown) == len(hood):
                break  # fixed point
            hood = grown

        self._cache[key] = hood
        return hood

    def default_roots(self) -> List[str]:
        """Dashboards, or worksheets when there are no dashboards."""
        for node_type in (NodeType.DASHBOARD, NodeType.WORKSHEET):
            roots = [n.id for n in self.graph.nodes_of_type(node_type)]
            if roots:
                return roots
        return []

    def _fill_unreached(self, distances: Dict[str, int]) -> Dict[str, int]:
        beyond = max(distances.values(), default=0) + 1
        return {node_id: distances.get(node_id, beyond) for node_id in self._order}

    def rank_from_roots(self, roots: Optional[Iterable[str]] = None) -> Dict[str, int]:
        """
        Hop distance of every node from the nearest root, following edges backwards.

        Nodes that cannot reach any root get ``max_depth + 1``.

        Args:
            roots: Root ids; dashboards (else worksheets) when omitted

        Returns:
            Dict of node id -> rank, in graph order
        """
        root_ids = list(roots) if roots is not None else self.default_roots()
        for root in root_ids:
            self._require(root)
        if not root_ids:
            return self._fill_unreached({})

        distances = nx.multi_source_dijkstra_path_length(
            self.G.reverse(copy=False), set(root_ids)
        )
        return self._fill_unreached({k: int(v) for k, v in distances.items()})

    def rank_from_selection(self, node_id: str) -> Dict[str, int]:
        """Directed BFS distance from ``node_id``; unreached nodes get ``max + 1``."""
        self._require(node_id)
        distances = nx.single_source_shortest_path_length(self.G, node_id)
        return self._fill_unreached(distances)

    def select_root(self, selected: Optional[str] = None) -> Optional[str]:
        """Center for a centred view: selection, first dashboard, first worksheet, first node."""
        if selected and selected in self.G:
            return selected
        for node_type in (NodeType.DASHBOARD, NodeType.WORKSHEET):
            candidates = self.graph.nodes_of_type(node_type)
            if candidates:
                return candidates[0].id
        return self._order[0] if self._order else None
