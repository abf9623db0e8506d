"""
Lineage graph models.

Nodes and edges are frozen once built; serialization uses the camelCase
aliases expected by graph renderers (``rawName``, ``isLOD`` ...).
"""

from typing import Optional, List, Dict, Set
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .metadata_models import ReferenceSet
from ..utils.naming import clean_internal_id, normalize_name


class NodeType(str, Enum):
    """Graph node types."""
    FIELD = "Field"
    CALCULATED_FIELD = "CalculatedField"
    WORKSHEET = "Worksheet"
    DASHBOARD = "Dashboard"
    PARAMETER = "Parameter"
    UNKNOWN = "Unknown"

    @classmethod
    def coerce(cls, value) -> "NodeType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return cls.UNKNOWN


class EdgeRel(str, Enum):
    """Lineage relationship kinds. Edges point from dependency to dependent."""
    FEEDS = "FEEDS"        # field/calc -> calc
    PARAM_OF = "PARAM_OF"  # parameter -> calc
    USED_IN = "USED_IN"    # field/calc -> worksheet
    ON = "ON"              # worksheet -> dashboard


class GraphNode(BaseModel):
    """A single lineage graph node."""
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str
    type: NodeType
    name: str
    raw_name: str = ""
    raw_id: str = ""
    original_id: str = ""

    # Fields, calculated fields and parameters
    datasource: Optional[str] = None
    datasource_id: Optional[str] = None
    datatype: Optional[str] = None
    role: Optional[str] = None
    default_aggregation: Optional[str] = None

    # Calculated fields
    references: Optional[ReferenceSet] = None
    formula: Optional[str] = None
    calc_class: Optional[str] = None
    is_lod: bool = Field(default=False, alias="isLOD")
    is_table_calc: bool = False

    # Parameters
    current_value: Optional[str] = None

    # Usage lists
    used_in_worksheets: List[str] = Field(default_factory=list)
    dashboards: List[str] = Field(default_factory=list)
    referenced_by_calcs: List[str] = Field(default_factory=list)
    used_in_calcs: List[str] = Field(default_factory=list)
    fields_used: List[str] = Field(default_factory=list)
    worksheets: List[str] = Field(default_factory=list)


class GraphEdge(BaseModel):
    """A directed lineage edge."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    source: str
    target: str
    rel: str = ""

    @property
    def key(self) -> str:
        return f"{self.source}->{self.target}:{self.rel}"


class Graph(BaseModel):
    """Nodes plus edges; plain serializable data."""
    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)

    def node_ids(self) -> Set[str]:
        return {n.id for n in self.nodes}

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def nodes_of_type(self, node_type: NodeType) -> List[GraphNode]:
        return [n for n in self.nodes if n.type == node_type]

    def to_json(self, indent: int = 2) -> str:
        return self.model_dump_json(indent=indent, by_alias=True)


class LookupEntry(BaseModel):
    """Search/autocomplete entry."""
    key: str
    label: str
    id: str


class LookupIndex(BaseModel):
    """
    Id/name translation tables built alongside a graph.

    Rebuilt wholesale whenever the graph changes; never patched.
    """
    id_to_name: Dict[str, str] = Field(default_factory=dict)
    id_to_type: Dict[str, str] = Field(default_factory=dict)
    id_to_datasource: Dict[str, str] = Field(default_factory=dict)
    name_to_id: Dict[str, str] = Field(default_factory=dict)
    label_to_id: Dict[str, str] = Field(default_factory=dict)
    entries: List[LookupEntry] = Field(default_factory=list)

    def find(self, query: str) -> Optional[str]:
        """Resolve a search query to a node id.

        Exact normalized name first, then the first label containing the query.
        """
        if not query or not isinstance(query, str):
            return None
        normalized = normalize_name(query)
        if not normalized:
            return None
        match = self.name_to_id.get(normalized)
        if match:
            return match
        for entry in self.entries:
            if normalized in entry.label.casefold():
                return entry.id
        return None

    def remember(
        self,
        raw_id: str,
        type_name: Optional[str],
        label: Optional[str],
        datasource: Optional[str] = None,
    ) -> None:
        """Register an identifier under its raw, trimmed and (un)bracketed forms."""
        if not raw_id:
            return
        label = label or "Unnamed"
        trimmed = raw_id.strip()
        variants = [raw_id, trimmed]
        unbracketed = clean_internal_id(trimmed)
        if unbracketed:
            variants.extend([unbracketed, f"[{unbracketed}]"])
        for variant in dict.fromkeys(v for v in variants if v):
            if self.id_to_name.get(variant, "Unnamed") == "Unnamed":
                self.id_to_name[variant] = label
            if type_name:
                self.id_to_type.setdefault(variant, type_name)
            if datasource:
                self.id_to_datasource.setdefault(variant, datasource)

    @classmethod
    def from_graph(cls, graph: Graph) -> "LookupIndex":
        """Rebuild name lookups from an already normalized graph."""
        index = cls()
        for node in graph.nodes:
            key = normalize_name(node.raw_name or node.name)
            if key and key not in index.name_to_id:
                index.name_to_id[key] = node.id
            if node.name and node.name not in index.label_to_id:
                index.label_to_id[node.name] = node.id
            index.remember(node.id, node.type.value, node.name, node.datasource)
            index.remember(node.original_id, node.type.value, node.name, node.datasource)
            index.entries.append(LookupEntry(
                key=key, label=f"{node.name} ({node.type.value})", id=node.id,
            ))
        index.entries.sort(key=lambda e: e.label.casefold())
        return index
