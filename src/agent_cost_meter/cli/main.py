"""CLI entry point for agent-cost-meter.

Invoked as::

    agent-meter [OPTIONS] COMMAND [ARGS]...

or during development::

    python -m agent_cost_meter.cli.main

Commands
--------
- version    Show version information
- rates      Show the configured rate tables
- estimate   Estimate the cost of a workflow file
- optimize   Rewrite a workflow file toward a target budget
- report     Summarise usage from an exported cost snapshot

Workflow and snapshot files may be YAML or JSON.
"""
from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
import yaml
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from agent_cost_meter.config import ConfigLoader, MeterConfig
from agent_cost_meter.exceptions import DataFormatError

console = Console()
err_console = Console(stderr=True)

_DEFAULT_CONFIG = Path("meter.yaml")


def _load_config(config_path: str) -> MeterConfig:
    loader = ConfigLoader()
    cfg_path = Path(config_path)
    return loader.load(cfg_path) if cfg_path.exists() else loader.defaults()


def _read_document(path: Path) -> dict[str, Any]:
    """Read a YAML or JSON mapping from *path*, exiting on malformed input."""
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text) if path.suffix.lower() == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        err_console.print(f"[red]Could not parse {path}:[/red] {exc}")
        sys.exit(1)
    if not isinstance(data, dict):
        err_console.print(f"[red]Expected a mapping in {path}.[/red]")
        sys.exit(1)
    return data


def _write_document(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        if path.suffix.lower() == ".json":
            json.dump(data, fh, indent=2, default=str)
        else:
            yaml.safe_dump(data, fh, sort_keys=False)


def _build_meter(config_path: str, history: str | None = None) -> Any:
    from agent_cost_meter.meter import ResourceMeter

    meter = ResourceMeter(_load_config(config_path))
    if history:
        try:
            meter.import_cost_data(_read_document(Path(history)))
        except DataFormatError as exc:
            err_console.print(f"[red]Invalid snapshot:[/red] {exc}")
            sys.exit(1)
    return meter


_config_option = click.option(
    "--config",
    "-c",
    "config_path",
    default=str(_DEFAULT_CONFIG),
    show_default=True,
    type=click.Path(),
    help="Path to meter.yaml.",
)


# ---------------------------------------------------------------------------
# Root command group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="agent-cost-meter")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log meter activity to stderr.")
def cli(verbose: bool) -> None:
    """Agent Cost Meter CLI: rates, estimates, optimization and usage reports."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from agent_cost_meter import __version__

    console.print(
        Panel(
            f"[bold]agent-cost-meter[/bold]  v[cyan]{__version__}[/cyan]\n"
            "Resource metering, budgets and cost planning for agent workflows.",
            title="Version",
            border_style="blue",
        )
    )


# ---------------------------------------------------------------------------
# rates
# ---------------------------------------------------------------------------


@cli.command(name="rates")
@_config_option
def rates_command(config_path: str) -> None:
    """Show the configured rate tables."""
    config = _load_config(config_path)

    tokens = Table(title="Token Rates (per 1K tokens)", box=box.SIMPLE)
    tokens.add_column("Model", style="cyan")
    tokens.add_column("Input", justify="right")
    tokens.add_column("Output", justify="right")
    for model, rate in sorted(config.rates.tokens.items()):
        label = f"{model} [dim](default)[/dim]" if model == config.rates.default_model else model
        tokens.add_row(label, f"${rate.input:.5f}", f"${rate.output:.5f}")
    console.print(tokens)

    units = Table(title="Unit Rates", box=box.SIMPLE)
    units.add_column("Resource", style="cyan")
    units.add_column("Type")
    units.add_column("Rate", justify="right")
    for resource, table in (
        ("compute", config.rates.compute),
        ("api", config.rates.api),
        ("storage", config.rates.storage),
    ):
        for key, rate in sorted(table.items()):
            units.add_row(resource, key, f"${rate:.5f}")
    console.print(units)


# ---------------------------------------------------------------------------
# estimate
# ---------------------------------------------------------------------------


@cli.command(name="estimate")
@click.argument("workflow_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--history",
    "-H",
    "history_file",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Cost snapshot whose history supplies analog tasks.",
)
@_config_option
def estimate_command(workflow_file: str, history_file: str | None, config_path: str) -> None:
    """Estimate the cost of a workflow file."""
    meter = _build_meter(config_path, history_file)
    try:
        estimate = meter.estimate_workflow_cost(_read_document(Path(workflow_file)))
    except ValidationError as exc:
        err_console.print(f"[red]Invalid workflow:[/red] {exc}")
        sys.exit(1)

    table = Table(title="Workflow Estimate", box=box.SIMPLE)
    table.add_column("Node", style="cyan")
    table.add_column("Agent")
    table.add_column("Model")
    table.add_column("Source")
    table.add_column("Cost", justify="right", style="bold")
    for entry in estimate.tasks:
        source = f"history ({entry.estimate.analogs})" if entry.estimate.from_history else "heuristic"
        table.add_row(
            entry.task_id,
            entry.agent.key,
            entry.agent.model or meter.cost_model.default_model,
            source,
            f"${entry.estimate.total:.4f}",
        )
    console.print(table)
    console.print(f"  Total:      [cyan]${estimate.total:.4f}[/cyan]")
    console.print(f"  Confidence: [cyan]{estimate.confidence * 100:.0f}%[/cyan]")


# ---------------------------------------------------------------------------
# optimize
# ---------------------------------------------------------------------------


@cli.command(name="optimize")
@click.argument("workflow_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--target", "-t", required=True, type=click.FloatRange(min=0), help="Target budget for the workflow.")
@click.option(
    "--output",
    "-o",
    "output_file",
    default=None,
    type=click.Path(),
    help="Write the rewritten workflow to this YAML or JSON file.",
)
@_config_option
def optimize_command(workflow_file: str, target: float, output_file: str | None, config_path: str) -> None:
    """Rewrite a workflow file toward a target budget."""
    meter = _build_meter(config_path)
    try:
        result = meter.optimize(_read_document(Path(workflow_file)), target)
    except ValidationError as exc:
        err_console.print(f"[red]Invalid workflow:[/red] {exc}")
        sys.exit(1)

    optimized_total = meter.estimate_workflow_cost(result.workflow).total
    within = optimized_total <= target
    status_str = "[green]WITHIN TARGET[/green]" if within else "[yellow]ABOVE TARGET[/yellow]"
    console.print(Panel(status_str, title="Optimization Result", border_style="blue"))
    console.print(f"  Original estimate:  [cyan]${result.original_total:.4f}[/cyan]")
    console.print(f"  Optimized estimate: [cyan]${optimized_total:.4f}[/cyan]")
    console.print(f"  Target:             [cyan]${target:.4f}[/cyan]")

    if result.replacements:
        table = Table(title="Agent Replacements", box=box.SIMPLE)
        table.add_column("Node", style="cyan")
        table.add_column("From")
        table.add_column("To", style="magenta")
        table.add_column("Saving", justify="right")
        for replaced in result.replacements:
            table.add_row(
                replaced.node_id,
                str(replaced.original_model),
                replaced.replacement_model,
                f"${replaced.cost_saving:.4f}",
            )
        console.print(table)
    if result.simplified:
        console.print(f"  Simplified tasks: {', '.join(result.simplified)}")
    for level, deferred in result.deferred.items():
        console.print(f"  Level {level}: deferred {', '.join(deferred)}")

    if output_file:
        out_path = Path(output_file)
        _write_document(out_path, result.workflow.model_dump(mode="json", exclude_none=True))
        console.print(f"  [green]Wrote[/green] optimized workflow to {out_path}.")


# ---------------------------------------------------------------------------
# report
# ---------------------------------------------------------------------------


@cli.command(name="report")
@click.argument("snapshot_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--hours", default=24.0, show_default=True, type=float, help="Trailing range in hours.")
@_config_option
def report_command(snapshot_file: str, hours: float, config_path: str) -> None:
    """Summarise usage from an exported cost snapshot."""
    meter = _build_meter(config_path, snapshot_file)
    report = meter.get_usage_report(hours=hours)

    console.print(Panel(f"[bold]Usage Report: last {hours:g}h[/bold]", border_style="blue"))
    console.print(f"  Total cost: [cyan]${report.total_cost:.4f}[/cyan]")

    resources = Table(title="By Resource", box=box.SIMPLE)
    resources.add_column("Resource", style="cyan")
    resources.add_column("Usage", justify="right")
    resources.add_column("Cost", justify="right", style="bold")
    for rtype, data in sorted(report.by_resource.items()):
        resources.add_row(rtype, f"{data.usage:,.2f}", f"${data.cost:.4f}")
    console.print(resources)

    consumers = Table(title="Top Consumers", box=box.SIMPLE)
    consumers.add_column("Agent", style="cyan")
    consumers.add_column("Cost", justify="right", style="bold")
    for agent_id, cost in report.top_consumers:
        consumers.add_row(agent_id, f"${cost:.4f}")
    console.print(consumers)


if __name__ == "__main__":
    cli()
