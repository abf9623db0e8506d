"""Metadata and graph models."""

from .metadata_models import (
    ReferenceSet,
    CalculationMetadata,
    ConnectionMetadata,
    FieldMetadata,
    DataSourceMetadata,
    ParameterMetadata,
    SheetMetadata,
    DashboardMetadata,
    LineageMetadata,
    WorkbookMetadata,
)
from .graph_models import (
    NodeType,
    EdgeRel,
    GraphNode,
    GraphEdge,
    Graph,
    LookupEntry,
    LookupIndex,
)
