"""
Tableau Workbook Lineage - command line entry point.

Usage:
    twb-lineage extract /path/to/workbook.twbx [options]
    twb-lineage graph /path/to/workbook.twbx [options]
    twb-lineage neighbors /path/to/workbook.twbx "Profit Ratio" --depth 2
    twb-lineage rank /path/to/workbook.twbx [--from NODE]
    twb-lineage cycles /path/to/workbook.twbx
    twb-lineage validate /path/to/workbook.twbx [--strict]
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import get_settings
from .exceptions import WorkbookLoadError
from .graph.filters import NodeFilter, filter_graph
from .models.graph_models import NodeType
from .session import WorkbookSession
from .utils.validation import LineageValidator

console = Console()
err_console = Console(stderr=True)

NODE_TYPE_CHOICES = [t.value for t in NodeType if t != NodeType.UNKNOWN]


def _configure_logging(verbose: bool):
    level = "DEBUG" if verbose else get_settings().log_level
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load(file_path: str) -> WorkbookSession:
    try:
        return WorkbookSession.from_file(file_path)
    except WorkbookLoadError as e:
        err_console.print(f"[red]Error loading workbook: {e}[/red]")
        sys.exit(1)


def _resolve_node(session: WorkbookSession, query: str) -> str:
    if session.node(query) is not None:
        return query
    node_id = session.find(query)
    if node_id is None:
        err_console.print(f"[red]No node matches '{query}'[/red]")
        sys.exit(1)
    return node_id


def _write_or_echo(text: str, output: Optional[str], label: str):
    if output:
        Path(output).write_text(text, encoding="utf-8")
        console.print(f"[green]✓ {label} saved to: {output}[/green]")
    else:
        click.echo(text)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def cli(verbose: bool):
    """
    Tableau Workbook Lineage - dependency graphs from .twb/.twbx workbooks.

    Fields, calculated fields, parameters, worksheets and dashboards become
    nodes; FEEDS, PARAM_OF, USED_IN and ON edges connect them.
    """
    _configure_logging(verbose)


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", type=click.Path(), help="Output file path")
@click.option("--format", "-f", "fmt", type=click.Choice(["json", "summary"]),
              default="json", help="Output format")
def extract(file_path: str, output: Optional[str], fmt: str):
    """
    Extract workbook metadata.

    Examples:
        twb-lineage extract workbook.twbx
        twb-lineage extract workbook.twbx -o metadata.json
        twb-lineage extract workbook.twb -f summary
    """
    session = _load(file_path)

    if fmt == "summary":
        _display_summary(session)
        if output:
            text = "\n".join(f"{k}: {v}" for k, v in session.summary().items())
            _write_or_echo(text, output, "Summary")
        return

    _write_or_echo(session.metadata.to_json(), output, "Metadata JSON")


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", type=click.Path(), help="Output file path")
@click.option("--type", "-t", "node_types", multiple=True,
              type=click.Choice(NODE_TYPE_CHOICES), help="Node types to keep (repeatable)")
@click.option("--lod-only", is_flag=True, help="Only LOD calculations among calculated fields")
@click.option("--table-calc-only", is_flag=True, help="Only table calculations among calculated fields")
def graph(
    file_path: str,
    output: Optional[str],
    node_types: Tuple[str, ...],
    lod_only: bool,
    table_calc_only: bool,
):
    """
    Build the normalized lineage graph as JSON.

    Examples:
        twb-lineage graph workbook.twbx -o graph.json
        twb-lineage graph workbook.twbx -t CalculatedField -t Worksheet --lod-only
    """
    session = _load(file_path)
    result = session.graph

    if node_types or lod_only or table_calc_only:
        node_filter = NodeFilter(lod_only=lod_only, table_calc_only=table_calc_only)
        if node_types:
            node_filter.node_types = {NodeType(t) for t in node_types}
        result = filter_graph(result, node_filter)

    _write_or_echo(result.to_json(), output, "Graph JSON")


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("node")
@click.option("--depth", "-d", type=int, default=1, show_default=True, help="Hops to expand (1-10)")
def neighbors(file_path: str, node: str, depth: int):
    """
    List the nodes within DEPTH hops of NODE (an id or a name).

    Examples:
        twb-lineage neighbors workbook.twbx "Profit Ratio" --depth 2
    """
    session = _load(file_path)
    node_id = _resolve_node(session, node)
    hood = session.neighborhood(node_id, depth)

    table = Table(title=f"Neighborhood of {session.lookup.id_to_name.get(node_id, node_id)}")
    table.add_column("Id", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="magenta")
    for n in session.graph.nodes:
        if n.id in hood:
            table.add_row(n.id, n.name, n.type.value)
    console.print(table)
    console.print(f"{len(hood)} node(s)")


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--from", "from_node", help="Rank by distance from this node instead of from dashboards")
@click.option("--json", "as_json", is_flag=True, help="Print ranks as JSON")
def rank(file_path: str, from_node: Optional[str], as_json: bool):
    """
    Hierarchy ranks: distance from dashboards (or worksheets), or from one node.

    Examples:
        twb-lineage rank workbook.twbx
        twb-lineage rank workbook.twbx --from "Sales Overview" --json
    """
    session = _load(file_path)
    if from_node:
        ranks = session.engine.rank_from_selection(_resolve_node(session, from_node))
    else:
        ranks = session.engine.rank_from_roots()

    if as_json:
        click.echo(json.dumps(ranks, indent=2))
        return

    table = Table(title="Ranks")
    table.add_column("Rank", justify="right", style="green")
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="magenta")
    for node_id, level in sorted(ranks.items(), key=lambda item: item[1]):
        n = session.node(node_id)
        table.add_row(str(level), n.name, n.type.value)
    console.print(table)


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
def cycles(file_path: str):
    """
    Report circular dependencies.

    Examples:
        twb-lineage cycles workbook.twbx
    """
    session = _load(file_path)
    if not session.cycles:
        console.print("[green]✓ No cycles found[/green]")
        return

    console.print(f"[yellow]⚠ {len(session.cycles)} cycle(s) found[/yellow]")
    for number, cycle in enumerate(session.cycles, start=1):
        names = [session.lookup.id_to_name.get(i, i) for i in cycle]
        console.print(f"  {number}. {' → '.join(names)}")


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--strict", is_flag=True, help="Treat warnings as errors")
@click.option("--output", "-o", type=click.Path(), help="Save validation report")
def validate(file_path: str, strict: bool, output: Optional[str]):
    """
    Validate the parsed workbook and its lineage graph.

    Examples:
        twb-lineage validate workbook.twbx
        twb-lineage validate workbook.twbx --strict -o report.txt
    """
    session = _load(file_path)

    with console.status("Running validation checks..."):
        validator = LineageValidator(strict_mode=strict)
        result = validator.validate(session.metadata, session.graph, session.cycles)

    score = result.get_score()
    score_color = "green" if score >= 80 else "yellow" if score >= 60 else "red"
    console.print(Panel.fit(
        f"[bold]Validation Score: [{score_color}]{score}/100[/{score_color}][/bold]\n"
        f"Status: {'[green]PASSED[/green]' if result.is_valid else '[red]FAILED[/red]'}",
        title="Validation Result"
    ))

    console.print(f"Items Checked: {result.checked_items}")
    console.print(f"Critical Issues: {result.critical_count}")
    console.print(f"Errors: {result.errors_count}")
    console.print(f"Warnings: {result.warnings_count}")

    if result.issues:
        console.print()
        console.print("[bold]Issues Found:[/bold]")
        for issue in result.issues[:20]:
            console.print(f"  [{issue.level.value}] {issue.category} {issue.item}: {issue.message}")
            if issue.suggestion:
                console.print(f"      → {issue.suggestion}")
        if len(result.issues) > 20:
            console.print(f"  ... and {len(result.issues) - 20} more issues")

    if output:
        Path(output).write_text(validator.generate_report(result), encoding="utf-8")
        console.print(f"\n[green]✓ Validation report saved to: {output}[/green]")

    if not result.is_valid:
        sys.exit(1)


def _display_summary(session: WorkbookSession):
    """Display extraction summary."""
    table = Table(title="Extraction Summary")
    table.add_column("Component", style="cyan")
    table.add_column("Count", justify="right", style="green")
    for key, value in session.summary().items():
        if key == "workbook":
            continue
        table.add_row(key.replace("_", " ").title(), str(value))
    console.print(table)


# Simple API for programmatic use
def load_workbook(file_path: str) -> WorkbookSession:
    """
    Load a workbook and build its lineage graph.

    Args:
        file_path: Path to .twbx or .twb file

    Returns:
        WorkbookSession: Metadata, graph and traversal engine
    """
    return WorkbookSession.from_file(file_path)


def extract_metadata(file_path: str):
    """Parsed metadata only."""
    return load_workbook(file_path).metadata


if __name__ == "__main__":
    cli()
