"""CLI command: chainaudit tools — list analysis backends."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from chainaudit.analysis.adapters import ProcessAdapter
from chainaudit.analysis.registry import build_registry
from chainaudit.cli.common import load_config

console = Console()


@click.command()
@click.pass_context
def tools(ctx: click.Context) -> None:
    """Show registered backends and whether they can run here."""
    config = load_config(ctx)
    registry = build_registry(config.tool_paths)

    table = Table(title="Analysis Backends")
    table.add_column("Name", style="cyan")
    table.add_column("Kind")
    table.add_column("Executable")
    table.add_column("Available")

    for name, analyzer in registry.items():
        if isinstance(analyzer, ProcessAdapter):
            kind, executable = "external", analyzer.executable
        else:
            kind, executable = "built-in", "-"
        available = "[green]yes[/green]" if analyzer.is_available() else "[red]no[/red]"
        table.add_row(name, kind, executable, available)

    console.print(table)
