"""CLI command: chainaudit analyze <contract> — run backends and print consensus."""

from __future__ import annotations

import asyncio
import json
import sys

import click
from rich.console import Console
from rich.table import Table

from chainaudit.analysis import DEDUP_KEYS, run_analysis
from chainaudit.analysis.models import ConsensusReport, Severity
from chainaudit.analysis.registry import build_registry
from chainaudit.cli.common import load_config
from chainaudit.errors import ChainAuditError

console = Console(stderr=True)

_SEVERITY_COLORS = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
    Severity.INFO: "dim",
}


@click.command()
@click.argument("contract", type=click.File("r", encoding="utf-8"))
@click.option(
    "--tool",
    "-t",
    "tools",
    multiple=True,
    help="Backend to run (custom, slither, mythril). Repeatable.",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Per-tool timeout in seconds.",
)
@click.option(
    "--dedup-key",
    type=click.Choice(sorted(DEDUP_KEYS)),
    default=None,
    help="How findings from different tools are matched.",
)
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON.")
@click.pass_context
def analyze(
    ctx: click.Context,
    contract,
    tools: tuple[str, ...],
    timeout: float | None,
    dedup_key: str | None,
    as_json: bool,
) -> None:
    """Analyze a Solidity CONTRACT file ('-' for stdin)."""
    config = load_config(ctx)
    source = contract.read()
    tool_list = list(tools) or config.default_tools

    if not as_json:
        console.print(
            f"[bold]chainaudit[/bold] analyzing [cyan]{contract.name}[/cyan] "
            f"with [cyan]{', '.join(tool_list)}[/cyan]\n"
        )

    try:
        results, report = asyncio.run(
            run_analysis(
                source,
                tool_list,
                timeout=timeout if timeout is not None else config.tool_timeout,
                dedup_key=dedup_key or config.dedup_key,
                registry=build_registry(config.tool_paths),
            )
        )
    except ChainAuditError as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        payload = {
            "results": [r.to_dict() for r in results],
            "consensus": report.to_dict(),
        }
        click.echo(json.dumps(payload, indent=2))
    else:
        _print_report(report)

    if report.summary.by_severity[Severity.CRITICAL] > 0:
        sys.exit(1)


def _print_report(report: ConsensusReport) -> None:
    summary = report.summary
    if not report.findings:
        console.print("[green]No findings.[/green]")
    else:
        table = Table(title="Consensus Findings", show_lines=False)
        table.add_column("Severity", style="bold", width=10)
        table.add_column("Type", style="cyan")
        table.add_column("Lines", justify="right")
        table.add_column("Agree", justify="right")
        table.add_column("Tools")
        table.add_column("Title", max_width=50)

        for finding in report.findings:
            color = _SEVERITY_COLORS.get(finding.severity, "white")
            table.add_row(
                f"[{color}]{finding.severity.value}[/{color}]",
                finding.type,
                ",".join(str(n) for n in finding.line_numbers) or "-",
                str(finding.agreement_count),
                finding.source_tool,
                (finding.title or finding.description)[:50],
            )
        console.print(table)

    counts = ", ".join(
        f"{severity.value.lower()}={summary.by_severity[severity]}"
        for severity in Severity
    )
    console.print(f"\nTotal findings: {summary.total_findings} ({counts})")
    if report.findings:
        console.print(f"Consensus confidence: {report.confidence:.0%}")
    if summary.agreement_count:
        console.print(f"Confirmed by multiple tools: {summary.agreement_count}")
    if summary.failed_tools:
        console.print(
            f"[yellow]Failed tools: {', '.join(summary.failed_tools)}[/yellow]"
        )
