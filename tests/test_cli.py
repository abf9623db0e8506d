"""Tests for the command line interface."""

import json

import pytest
from click.testing import CliRunner

from twb_lineage.main import cli

from conftest import CYCLIC_TWB


@pytest.fixture
def runner():
    return CliRunner()


class TestExtract:

    def test_json_to_stdout(self, runner, twb_file):
        result = runner.invoke(cli, ["extract", str(twb_file)])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["name"] == "Superstore"
        assert data["total_calculated_fields"] == 4

    def test_json_to_file(self, runner, twb_file, tmp_path):
        out = tmp_path / "meta.json"
        result = runner.invoke(cli, ["extract", str(twb_file), "-o", str(out)])
        assert result.exit_code == 0
        assert json.loads(out.read_text())["total_worksheets"] == 2

    def test_summary(self, runner, twb_file):
        result = runner.invoke(cli, ["extract", str(twb_file), "-f", "summary"])
        assert result.exit_code == 0
        assert "Extraction Summary" in result.output

    def test_load_error_exits_1(self, runner, tmp_path):
        bad = tmp_path / "bad.twb"
        bad.write_text("<html />")
        result = runner.invoke(cli, ["extract", str(bad)])
        assert result.exit_code == 1


class TestGraph:

    def test_graph_json(self, runner, twb_file):
        result = runner.invoke(cli, ["graph", str(twb_file)])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert len(data["nodes"]) == 13
        assert len(data["edges"]) == 15

    def test_graph_filtered(self, runner, twb_file):
        result = runner.invoke(cli, [
            "graph", str(twb_file), "-t", "Worksheet", "-t", "Dashboard",
        ])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert {n["type"] for n in data["nodes"]} == {"Worksheet", "Dashboard"}
        assert {e["rel"] for e in data["edges"]} == {"ON"}

    def test_lod_only(self, runner, twb_file):
        result = runner.invoke(cli, ["graph", str(twb_file), "-t", "CalculatedField", "--lod-only"])
        data = json.loads(result.stdout)
        assert [n["id"] for n in data["nodes"]] == ["Calculation_3"]


class TestExploration:

    def test_neighbors_by_name(self, runner, twb_file):
        result = runner.invoke(cli, ["neighbors", str(twb_file), "Overview"])
        assert result.exit_code == 0
        assert "3 node(s)" in result.output

    def test_neighbors_unknown_node(self, runner, twb_file):
        result = runner.invoke(cli, ["neighbors", str(twb_file), "zzz"])
        assert result.exit_code == 1

    def test_rank_json(self, runner, twb_file):
        result = runner.invoke(cli, ["rank", str(twb_file), "--json"])
        assert result.exit_code == 0
        ranks = json.loads(result.stdout)
        assert ranks["Overview"] == 0
        assert ranks["Sales"] == 2

    def test_rank_from_selection(self, runner, twb_file):
        result = runner.invoke(cli, ["rank", str(twb_file), "--from", "Sales", "--json"])
        assert json.loads(result.stdout)["Sales by Region"] == 1

    def test_cycles_none(self, runner, twb_file):
        result = runner.invoke(cli, ["cycles", str(twb_file)])
        assert result.exit_code == 0
        assert "No cycles found" in result.output

    def test_cycles_found(self, runner, tmp_path):
        path = tmp_path / "Loop.twb"
        path.write_text(CYCLIC_TWB, encoding="utf-8")
        result = runner.invoke(cli, ["cycles", str(path)])
        assert result.exit_code == 0
        assert "1 cycle(s) found" in result.output


class TestValidate:

    def test_valid_workbook(self, runner, twb_file, tmp_path):
        report = tmp_path / "report.txt"
        result = runner.invoke(cli, ["validate", str(twb_file), "-o", str(report)])
        assert result.exit_code == 0
        assert "PASSED" in report.read_text()

    def test_strict_cycle_fails(self, runner, tmp_path):
        path = tmp_path / "Loop.twb"
        path.write_text(CYCLIC_TWB, encoding="utf-8")
        result = runner.invoke(cli, ["validate", str(path), "--strict"])
        assert result.exit_code == 1
