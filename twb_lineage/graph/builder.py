"""
Graph builder: workbook metadata -> canonical lineage graph.

Formulas, worksheets and dashboards refer to other entities by caption, not
by internal id, so every cross-reference goes through a normalized-name index
partitioned by node type. When a caption exists both as a plain field and as
a calculation, consumers bind to the calculation.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from ..config import Settings, get_settings
from ..models.graph_models import (
    EdgeRel,
    Graph,
    GraphEdge,
    GraphNode,
    LookupIndex,
    NodeType,
)
from ..models.metadata_models import (
    ReferenceSet,
    WorkbookMetadata,
    is_lod_formula,
    is_table_calc_formula,
)
from ..utils.naming import clean_internal_id, display_name, normalize_name, slugify
from ..utils.validation import Diagnostics, IssueCategory
from .cycles import detect_cycles

logger = logging.getLogger(__name__)

ID_PREFIXES = {
    NodeType.FIELD: "field",
    NodeType.CALCULATED_FIELD: "calc",
    NodeType.PARAMETER: "param",
    NodeType.WORKSHEET: "ws",
    NodeType.DASHBOARD: "db",
}


@dataclass
class BuildResult:
    """Output of one graph build."""
    graph: Graph
    lookup: LookupIndex
    cycles: List[List[str]] = field(default_factory=list)


class GraphBuilder:
    """
    Builds the lineage graph for one workbook.

    A builder keeps per-build state (used ids, name index), so use one
    instance per workbook load.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        diagnostics: Optional[Diagnostics] = None,
    ):
        self.settings = settings or get_settings()
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self._reset()

    def _reset(self):
        self._used_ids: Set[str] = set()
        self._name_to_ids: Dict[NodeType, Dict[str, List[str]]] = {t: {} for t in ID_PREFIXES}
        self._drafts: Dict[str, Dict[str, Any]] = {}
        self._edges: Dict[str, GraphEdge] = {}

    def canonical_id(self, raw_id: Optional[str], node_type: NodeType, base_name: str) -> str:
        """
        Assign a unique node id.

        The cleaned internal id is used when present and unused. Otherwise the
        id is ``{prefix}:{slug}``, then ``{prefix}:{slug}-2``, ``-3`` ... up to
        ``max_iterations`` attempts, then a timestamped random id.
        """
        prefix = ID_PREFIXES[node_type]
        candidate = clean_internal_id(raw_id)
        if candidate:
            if candidate not in self._used_ids:
                self._used_ids.add(candidate)
                return candidate
            self.diagnostics.add(
                IssueCategory.DUPLICATE_ID, candidate,
                f"Duplicate node id '{candidate}', generating a fallback id",
            )

        slug = slugify(base_name or candidate) or f"{prefix}-{len(self._used_ids) + 1}"
        fallback = f"{prefix}:{slug}"
        counter = 2
        while fallback in self._used_ids:
            if counter > self.settings.max_iterations:
                unique_id = f"{prefix}:{slug}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"
                logger.error(
                    "Failed to generate unique id after %d attempts, using %s",
                    self.settings.max_iterations, unique_id,
                )
                self.diagnostics.add(
                    IssueCategory.ID_FALLBACK, unique_id,
                    f"Id attempts exhausted for '{base_name}', using random id",
                )
                self._used_ids.add(unique_id)
                return unique_id
            fallback = f"{prefix}:{slug}-{counter}"
            counter += 1

        self._used_ids.add(fallback)
        return fallback

    def _register(self, node_type: NodeType, draft: Dict[str, Any]):
        self._drafts[draft["id"]] = draft
        keys = [normalize_name(draft["raw_name"])]
        if draft.get("original_id"):
            keys.append(normalize_name(clean_internal_id(draft["original_id"])))
        bucket = self._name_to_ids[node_type]
        for key in dict.fromkeys(k for k in keys if k):
            ids = bucket.setdefault(key, [])
            if draft["id"] not in ids:
                ids.append(draft["id"])

    def _lookup(self, node_type: NodeType, name: str) -> List[str]:
        return self._name_to_ids[node_type].get(normalize_name(name), [])

    def resolve_field(self, name: str, exclude: Optional[str] = None) -> List[str]:
        """Node ids for a field reference, calculations taking priority."""
        calc_ids = [i for i in self._lookup(NodeType.CALCULATED_FIELD, name) if i != exclude]
        if calc_ids:
            return calc_ids
        return [i for i in self._lookup(NodeType.FIELD, name) if i != exclude]

    def _add_edge(self, source: str, target: str, rel: EdgeRel):
        if not source or not target:
            return
        edge_id = f"{source}->{target}:{rel.value}"
        if edge_id in self._edges:
            return
        self._edges[edge_id] = GraphEdge(id=edge_id, source=source, target=target, rel=rel.value)

    def _add_nodes(self, meta: WorkbookMetadata):
        for ds_index, ds in enumerate(meta.datasources, start=1):
            datasource_id = clean_internal_id(ds.raw_id) or ds.raw_id or ds.id or ds.name
            for index, fld in enumerate(ds.fields, start=1):
                node_type = NodeType.CALCULATED_FIELD if fld.is_calculated else NodeType.FIELD
                base_name = fld.name or f"Field {ds_index}.{index}"
                node_id = self.canonical_id(fld.raw_id, node_type, base_name)
                draft = {
                    "id": node_id,
                    "type": node_type,
                    "name": display_name(base_name),
                    "raw_name": base_name,
                    "raw_id": node_id,
                    "original_id": fld.raw_id or "",
                    "datasource": ds.display_name,
                    "datasource_id": datasource_id,
                    "datatype": fld.datatype,
                    "role": fld.role,
                    "default_aggregation": fld.default_aggregation,
                }
                if fld.is_calculated:
                    formula = fld.formula
                    draft.update(
                        references=fld.references or ReferenceSet(),
                        formula=formula,
                        calc_class=fld.calculation.calculation_class if fld.calculation else "",
                        is_lod=is_lod_formula(formula),
                        is_table_calc=is_table_calc_formula(formula),
                    )
                self._register(node_type, draft)

        for index, param in enumerate(meta.parameters, start=1):
            base_name = param.name or f"Parameter {index}"
            node_id = self.canonical_id(param.raw_id, NodeType.PARAMETER, base_name)
            self._register(NodeType.PARAMETER, {
                "id": node_id,
                "type": NodeType.PARAMETER,
                "name": display_name(base_name),
                "raw_name": base_name,
                "raw_id": node_id,
                "original_id": param.raw_id or "",
                "datatype": param.datatype,
                "current_value": param.current_value,
            })

        for index, sheet in enumerate(meta.worksheets, start=1):
            base_name = sheet.name or f"Worksheet {index}"
            node_id = self.canonical_id(sheet.raw_id, NodeType.WORKSHEET, base_name)
            self._register(NodeType.WORKSHEET, {
                "id": node_id,
                "type": NodeType.WORKSHEET,
                "name": base_name,
                "raw_name": base_name,
                "raw_id": node_id,
                "original_id": sheet.raw_id or "",
                "fields_used": list(sheet.fields_used),
            })

        for index, dashboard in enumerate(meta.dashboards, start=1):
            base_name = dashboard.name or f"Dashboard {index}"
            node_id = self.canonical_id(dashboard.raw_id, NodeType.DASHBOARD, base_name)
            self._register(NodeType.DASHBOARD, {
                "id": node_id,
                "type": NodeType.DASHBOARD,
                "name": base_name,
                "raw_name": base_name,
                "raw_id": node_id,
                "original_id": dashboard.raw_id or "",
                "worksheets": list(dashboard.worksheets),
            })

    def _add_edges(self, meta: WorkbookMetadata):
        # Drafts were registered in metadata order, so zip them back up by type.
        calc_ids = [s["id"] for s in self._drafts.values() if s["type"] == NodeType.CALCULATED_FIELD]
        calcs = [f for _, f in meta.iter_fields() if f.is_calculated]
        for calc_id, calc in zip(calc_ids, calcs):
            refs = calc.references or ReferenceSet()
            for ref_name in refs.fields:
                source_ids = self.resolve_field(ref_name, exclude=calc_id)
                if not source_ids:
                    self.diagnostics.add(
                        IssueCategory.UNRESOLVED_REFERENCE, calc.name,
                        f"Calculation '{calc.name}' references unknown field {ref_name}",
                    )
                for source_id in source_ids:
                    self._add_edge(source_id, calc_id, EdgeRel.FEEDS)
            for param_name in refs.parameters:
                param_ids = self._lookup(NodeType.PARAMETER, param_name)
                if not param_ids:
                    self.diagnostics.add(
                        IssueCategory.UNRESOLVED_REFERENCE, calc.name,
                        f"Calculation '{calc.name}' references unknown parameter '{param_name}'",
                    )
                for param_id in param_ids:
                    self._add_edge(param_id, calc_id, EdgeRel.PARAM_OF)

        sheet_ids = [s["id"] for s in self._drafts.values() if s["type"] == NodeType.WORKSHEET]
        for sheet_id, sheet in zip(sheet_ids, meta.worksheets):
            for ref_name in sheet.fields_used:
                for source_id in self.resolve_field(ref_name):
                    self._add_edge(source_id, sheet_id, EdgeRel.USED_IN)

        dashboard_ids = [s["id"] for s in self._drafts.values() if s["type"] == NodeType.DASHBOARD]
        for dashboard_id, dashboard in zip(dashboard_ids, meta.dashboards):
            for ws_name in dashboard.worksheets:
                for sheet_id in self._lookup(NodeType.WORKSHEET, ws_name):
                    self._add_edge(sheet_id, dashboard_id, EdgeRel.ON)

    def _attach_usage(self):
        """Fill the denormalized "used in" lists from the resolved edges."""
        outgoing: Dict[str, Dict[str, List[str]]] = {}
        for edge in self._edges.values():
            targets = outgoing.setdefault(edge.source, {}).setdefault(edge.rel, [])
            targets.append(edge.target)

        def names(ids: List[str]) -> List[str]:
            return list(dict.fromkeys(self._drafts[i]["raw_name"] for i in ids))

        for node_id, draft in self._drafts.items():
            out = outgoing.get(node_id, {})
            node_type = draft["type"]
            if node_type in (NodeType.FIELD, NodeType.CALCULATED_FIELD):
                sheets = out.get(EdgeRel.USED_IN.value, [])
                dashboards = [
                    d for s in sheets for d in outgoing.get(s, {}).get(EdgeRel.ON.value, [])
                ]
                draft["used_in_worksheets"] = names(sheets)
                draft["dashboards"] = names(dashboards)
                draft["referenced_by_calcs"] = names(out.get(EdgeRel.FEEDS.value, []))
            elif node_type == NodeType.PARAMETER:
                draft["used_in_calcs"] = names(out.get(EdgeRel.PARAM_OF.value, []))
            elif node_type == NodeType.WORKSHEET:
                draft["dashboards"] = names(out.get(EdgeRel.ON.value, []))

    def build(self, meta: WorkbookMetadata) -> BuildResult:
        """
        Convert workbook metadata into a graph, lookup index and cycle list.

        Args:
            meta: Parsed workbook metadata

        Returns:
            BuildResult: Graph with unique node ids and deduplicated edges
        """
        self._reset()
        started = time.perf_counter()

        self._add_nodes(meta)
        self._add_edges(meta)
        self._attach_usage()

        graph = Graph(
            nodes=[GraphNode(**draft) for draft in self._drafts.values()],
            edges=list(self._edges.values()),
        )

        lookup = LookupIndex.from_graph(graph)
        for ds in meta.datasources:
            ds_id = clean_internal_id(ds.raw_id) or ds.raw_id or ds.id or ds.name
            lookup.remember(ds_id, "Datasource", ds.display_name, ds.display_name)

        logger.debug(
            "Built graph with %d nodes and %d edges in %.1f ms",
            len(graph.nodes), len(graph.edges), (time.perf_counter() - started) * 1000,
        )

        cycles = detect_cycles(graph)
        for number, cycle in enumerate(cycles, start=1):
            labels = [self._drafts[i]["name"] if i in self._drafts else i for i in cycle]
            self.diagnostics.add(
                IssueCategory.CYCLE, cycle[0],
                f"Cycle {number}: {' -> '.join(labels)}",
                suggestion="Cycles are kept; check the calculations involved",
            )

        return BuildResult(graph=graph, lookup=lookup, cycles=cycles)


def build_graph(
    meta: WorkbookMetadata,
    settings: Optional[Settings] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> BuildResult:
    """Build the lineage graph for ``meta`` with a fresh builder."""
    return GraphBuilder(settings, diagnostics).build(meta)
