"""
One loaded workbook and everything derived from it.

A session owns its metadata, graph, lookup index and traversal cache.
Loading another workbook means building another session; nothing is shared
between sessions.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Union

from .config import Settings, get_settings
from .extractors.xml_extractor import parse_workbook
from .graph.builder import GraphBuilder
from .graph.neighborhood import NeighborhoodEngine
from .graph.normalizer import normalize_graph
from .loader import LoadedWorkbook, WorkbookLoader
from .models.graph_models import Graph, GraphNode, LookupIndex
from .models.metadata_models import WorkbookMetadata
from .utils.validation import Diagnostics, IssueCategory

logger = logging.getLogger(__name__)


@dataclass
class WorkbookSession:
    """Parsed metadata, normalized graph and traversal engine for one workbook."""
    metadata: WorkbookMetadata
    graph: Graph
    lookup: LookupIndex
    engine: NeighborhoodEngine
    cycles: List[List[str]] = field(default_factory=list)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    loaded: Optional[LoadedWorkbook] = None

    @classmethod
    def from_metadata(
        cls,
        metadata: WorkbookMetadata,
        settings: Optional[Settings] = None,
        diagnostics: Optional[Diagnostics] = None,
        loaded: Optional[LoadedWorkbook] = None,
    ) -> "WorkbookSession":
        """Build, normalize and index the graph for already parsed metadata."""
        settings = settings or get_settings()
        diagnostics = diagnostics if diagnostics is not None else Diagnostics()

        built = GraphBuilder(settings, diagnostics).build(metadata)
        graph = normalize_graph(built.graph, diagnostics)
        lookup = LookupIndex.from_graph(graph)
        for key, value in built.lookup.id_to_datasource.items():
            lookup.id_to_datasource.setdefault(key, value)

        session = cls(
            metadata=metadata,
            graph=graph,
            lookup=lookup,
            engine=NeighborhoodEngine(graph, settings),
            cycles=built.cycles,
            diagnostics=diagnostics,
            loaded=loaded,
        )
        logger.info(
            "Session ready for '%s': %d nodes, %d edges, %d warning(s)",
            metadata.name, len(graph.nodes), len(graph.edges), len(diagnostics),
        )
        return session

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        filename: str,
        settings: Optional[Settings] = None,
    ) -> "WorkbookSession":
        """Load a .twb/.twbx held in memory."""
        settings = settings or get_settings()
        return cls._from_loaded(WorkbookLoader(settings).load_bytes(data, filename), settings)

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        settings: Optional[Settings] = None,
    ) -> "WorkbookSession":
        """Load a .twb/.twbx from disk."""
        settings = settings or get_settings()
        return cls._from_loaded(WorkbookLoader(settings).load_file(path), settings)

    @classmethod
    def _from_loaded(cls, loaded: LoadedWorkbook, settings: Settings) -> "WorkbookSession":
        diagnostics = Diagnostics()
        if loaded.large_file:
            diagnostics.add(
                IssueCategory.LARGE_FILE, loaded.source_file,
                f"File is {loaded.size / 1024 / 1024:.1f} MB; processing may be slow",
            )
        metadata = parse_workbook(loaded.root, loaded.workbook_name, loaded.source_file)
        return cls.from_metadata(metadata, settings, diagnostics, loaded)

    def node(self, node_id: str) -> Optional[GraphNode]:
        return self.graph.get_node(node_id)

    def find(self, query: str) -> Optional[str]:
        """Node id for a search query: exact name first, then label substring."""
        return self.lookup.find(query)

    def feeds(self, node_id: str) -> List[str]:
        """Ids that flow directly into ``node_id``."""
        return self.engine.predecessors(node_id)

    def neighborhood(self, node_id: str, depth: int = 1) -> FrozenSet[str]:
        return self.engine.expand_neighborhood(node_id, depth)

    def summary(self) -> Dict[str, Any]:
        """Counts for display."""
        meta = self.metadata
        return {
            "workbook": meta.name,
            "datasources": meta.total_datasources,
            "fields": meta.total_fields,
            "regular_fields": meta.total_regular_fields,
            "calculated_fields": meta.total_calculated_fields,
            "lod_calculations": meta.total_lod_calculations,
            "table_calculations": meta.total_table_calculations,
            "parameters": meta.total_parameters,
            "worksheets": meta.total_worksheets,
            "dashboards": meta.total_dashboards,
            "dependencies": meta.total_dependencies,
            "nodes": len(self.graph.nodes),
            "edges": len(self.graph.edges),
            "cycles": len(self.cycles),
            "warnings": len(self.diagnostics),
        }
