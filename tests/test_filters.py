"""Tests for graph view filters."""

from twb_lineage.graph.filters import NodeFilter, datatype_family, filter_graph, is_node_visible
from twb_lineage.models.graph_models import GraphNode, NodeType


def node(node_type, **kwargs):
    return GraphNode(id=kwargs.pop("id", "n"), type=node_type, name="n", **kwargs)


class TestDatatypeFamily:

    def test_families(self):
        assert datatype_family("string") == "string"
        assert datatype_family("real") == "number"
        assert datatype_family("integer") == "number"
        assert datatype_family("datetime") == "date"
        assert datatype_family("boolean") == "boolean"
        assert datatype_family("spatial") is None
        assert datatype_family("") is None


class TestIsNodeVisible:

    def test_default_filter_shows_everything(self):
        assert is_node_visible(node(NodeType.WORKSHEET), NodeFilter())
        assert is_node_visible(node(NodeType.FIELD, datatype="spatial"), NodeFilter())

    def test_type_filter(self):
        node_filter = NodeFilter(node_types={NodeType.WORKSHEET})
        assert is_node_visible(node(NodeType.WORKSHEET), node_filter)
        assert not is_node_visible(node(NodeType.FIELD), node_filter)

    def test_lod_only_applies_to_calculations(self):
        node_filter = NodeFilter(lod_only=True)
        assert is_node_visible(node(NodeType.CALCULATED_FIELD, is_lod=True), node_filter)
        assert not is_node_visible(node(NodeType.CALCULATED_FIELD), node_filter)
        assert is_node_visible(node(NodeType.FIELD), node_filter)

    def test_table_calc_only(self):
        node_filter = NodeFilter(table_calc_only=True)
        assert is_node_visible(node(NodeType.CALCULATED_FIELD, is_table_calc=True), node_filter)
        assert not is_node_visible(node(NodeType.CALCULATED_FIELD, is_lod=True), node_filter)

    def test_datatype_filter(self):
        node_filter = NodeFilter(datatype_families={"number"})
        assert is_node_visible(node(NodeType.FIELD, datatype="real"), node_filter)
        assert not is_node_visible(node(NodeType.FIELD, datatype="string"), node_filter)
        assert not is_node_visible(node(NodeType.PARAMETER, datatype="date"), node_filter)
        # untyped nodes and non-field nodes are not affected
        assert is_node_visible(node(NodeType.FIELD), node_filter)
        assert is_node_visible(node(NodeType.WORKSHEET, datatype="string"), node_filter)


class TestFilterGraph:

    def test_edges_need_both_endpoints(self, session):
        node_filter = NodeFilter(node_types={NodeType.WORKSHEET, NodeType.DASHBOARD})
        graph = filter_graph(session.graph, node_filter)
        assert {n.type for n in graph.nodes} == {NodeType.WORKSHEET, NodeType.DASHBOARD}
        assert {e.rel for e in graph.edges} == {"ON"}
        assert len(graph.edges) == 3

    def test_lod_only_graph(self, session):
        graph = filter_graph(session.graph, NodeFilter(
            node_types={NodeType.CALCULATED_FIELD}, lod_only=True,
        ))
        assert [n.id for n in graph.nodes] == ["Calculation_3"]
        assert graph.edges == []
