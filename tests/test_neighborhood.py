"""Tests for neighborhood expansion and ranking."""

import pytest

from twb_lineage.config import Settings
from twb_lineage.graph.filters import NodeFilter, filter_graph
from twb_lineage.graph.neighborhood import NeighborhoodEngine
from twb_lineage.graph.normalizer import normalize_graph
from twb_lineage.models.graph_models import NodeType


@pytest.fixture
def chain():
    ids = ["a", "b", "c", "d", "e"]
    return normalize_graph({
        "nodes": [{"id": i, "type": "Field"} for i in ids],
        "edges": [{"source": s, "target": t, "rel": "FEEDS"} for s, t in zip(ids, ids[1:])],
    })


class TestNeighborhood:

    def test_closed_neighborhood_both_directions(self, chain):
        engine = NeighborhoodEngine(chain, Settings())
        assert engine.closed_neighborhood("c") == {"b", "c", "d"}

    def test_expand_by_hops(self, chain):
        engine = NeighborhoodEngine(chain, Settings())
        assert engine.expand_neighborhood("a", 1) == {"a", "b"}
        assert engine.expand_neighborhood("a", 2) == {"a", "b", "c"}
        assert engine.expand_neighborhood("a", 4) == {"a", "b", "c", "d", "e"}

    def test_monotonic_up_to_fixed_point(self, chain):
        engine = NeighborhoodEngine(chain, Settings())
        previous = engine.expand_neighborhood("a", 1)
        for depth in range(2, 11):
            current = engine.expand_neighborhood("a", depth)
            assert previous <= current
            previous = current
        assert engine.expand_neighborhood("a", 9) == engine.expand_neighborhood("a", 10)

    def test_depth_clamped(self, chain):
        engine = NeighborhoodEngine(chain, Settings())
        assert engine.clamp_depth(0) == 1
        assert engine.clamp_depth(-3) == 1
        assert engine.clamp_depth(50) == 10
        assert engine.expand_neighborhood("a", 0) == engine.expand_neighborhood("a", 1)

    def test_numeric_string_depth_not_reported_as_clamped(self, chain, caplog):
        engine = NeighborhoodEngine(chain, Settings())
        assert engine.clamp_depth("3") == 3
        assert "clamped" not in caplog.text

    def test_unparseable_depth_falls_back_to_minimum(self, chain, caplog):
        engine = NeighborhoodEngine(chain, Settings())
        assert engine.clamp_depth("deep") == 1
        assert "Invalid depth 'deep'" in caplog.text

    def test_results_memoized_and_cleared(self, chain):
        engine = NeighborhoodEngine(chain, Settings())
        first = engine.expand_neighborhood("b", 2)
        assert engine.expand_neighborhood("b", 2) is first
        engine.clear_cache()
        assert engine.expand_neighborhood("b", 2) is not first

    def test_max_iterations_safety_valve(self, chain):
        engine = NeighborhoodEngine(chain, Settings(max_iterations=1))
        assert engine.expand_neighborhood("a", 10) == {"a", "b", "c"}

    def test_unknown_node(self, chain):
        engine = NeighborhoodEngine(chain, Settings())
        with pytest.raises(KeyError):
            engine.expand_neighborhood("ghost", 1)


class TestRanking:

    def test_rank_from_dashboards(self, session):
        ranks = session.engine.rank_from_roots()
        assert ranks["Overview"] == 0
        assert ranks["Detail"] == 0
        assert ranks["Profit Trend"] == 1
        assert ranks["Sales"] == 2
        assert ranks["Calculation_1"] == 2
        assert ranks["Parameter 1"] == 3
        # downstream-only calculations never reach a dashboard
        assert ranks["Calculation_2"] == 4
        assert ranks["Calculation_3"] == 4
        assert set(ranks) == {n.id for n in session.graph.nodes}

    def test_falls_back_to_worksheets(self, session):
        node_filter = NodeFilter()
        node_filter.node_types.discard(NodeType.DASHBOARD)
        engine = NeighborhoodEngine(filter_graph(session.graph, node_filter), Settings())
        ranks = engine.rank_from_roots()
        assert ranks["Sales by Region"] == 0
        assert ranks["Profit Trend"] == 0
        assert ranks["Sales"] == 1

    def test_no_roots_all_unreached(self, chain):
        ranks = NeighborhoodEngine(chain, Settings()).rank_from_roots()
        assert set(ranks.values()) == {1}

    def test_rank_from_selection(self, session):
        ranks = session.engine.rank_from_selection("Sales")
        assert ranks["Sales"] == 0
        assert ranks["Sales by Region"] == 1
        assert ranks["Calculation_2"] == 1
        assert ranks["Overview"] == 2
        assert ranks["Profit"] == 3

    def test_select_root(self, session):
        engine = session.engine
        assert engine.select_root() == "Overview"
        assert engine.select_root("Sales") == "Sales"
        assert engine.select_root("ghost") == "Overview"

    def test_select_root_empty_graph(self):
        engine = NeighborhoodEngine(normalize_graph(None), Settings())
        assert engine.select_root() is None
