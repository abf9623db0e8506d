"""Type, datatype and calculation-kind filters for graph views."""

from typing import Optional, Set

from pydantic import BaseModel, Field

from ..models.graph_models import Graph, GraphNode, NodeType

DATATYPE_FAMILIES = {
    "string": ("string", "text"),
    "number": ("integer", "real", "number", "decimal"),
    "date": ("date", "time"),
    "boolean": ("boolean", "bool"),
}

_DATATYPED = {NodeType.FIELD, NodeType.CALCULATED_FIELD, NodeType.PARAMETER}


def datatype_family(datatype: Optional[str]) -> Optional[str]:
    """Map a Tableau datatype ("real", "datetime" ...) to its family, or None."""
    lowered = (datatype or "").lower()
    if not lowered:
        return None
    for family, markers in DATATYPE_FAMILIES.items():
        if any(marker in lowered for marker in markers):
            return family
    return None


class NodeFilter(BaseModel):
    """Which nodes a view shows. The default shows everything."""
    node_types: Set[NodeType] = Field(default_factory=lambda: {
        NodeType.FIELD,
        NodeType.CALCULATED_FIELD,
        NodeType.WORKSHEET,
        NodeType.DASHBOARD,
        NodeType.PARAMETER,
        NodeType.UNKNOWN,
    })
    lod_only: bool = False
    table_calc_only: bool = False
    datatype_families: Set[str] = Field(default_factory=lambda: set(DATATYPE_FAMILIES))

    @property
    def all_datatypes(self) -> bool:
        return set(DATATYPE_FAMILIES) <= self.datatype_families


def is_node_visible(node: GraphNode, node_filter: NodeFilter) -> bool:
    """Apply type, LOD/table-calc and datatype restrictions to one node."""
    if node.type not in node_filter.node_types:
        return False

    if node.type == NodeType.CALCULATED_FIELD:
        if node_filter.lod_only and not node.is_lod:
            return False
        if node_filter.table_calc_only and not node.is_table_calc:
            return False

    if node.type in _DATATYPED and node.datatype and not node_filter.all_datatypes:
        lowered = node.datatype.lower()
        return any(
            marker in lowered
            for family in node_filter.datatype_families
            for marker in DATATYPE_FAMILIES.get(family, ())
        )

    return True


def filter_graph(graph: Graph, node_filter: Optional[NodeFilter] = None) -> Graph:
    """Keep visible nodes and the edges whose endpoints both survive."""
    node_filter = node_filter or NodeFilter()
    nodes = [n for n in graph.nodes if is_node_visible(n, node_filter)]
    kept = {n.id for n in nodes}
    edges = [e for e in graph.edges if e.source in kept and e.target in kept]
    return Graph(nodes=nodes, edges=edges)
