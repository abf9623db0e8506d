"""Lineage graph construction, repair and traversal."""

from .builder import BuildResult, GraphBuilder, build_graph
from .cycles import detect_cycles
from .filters import NodeFilter, datatype_family, filter_graph, is_node_visible
from .neighborhood import NeighborhoodEngine, to_networkx
from .normalizer import normalize_graph

__all__ = [
    "BuildResult",
    "GraphBuilder",
    "build_graph",
    "detect_cycles",
    "NodeFilter",
    "datatype_family",
    "filter_graph",
    "is_node_visible",
    "NeighborhoodEngine",
    "to_networkx",
    "normalize_graph",
]
