"""
Scrape commands for running source adapters.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from tenderfeed.cli import settings

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Run source adapters",
    no_args_is_help=True,
)


def _results_table(results, title: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Source", style="cyan")
    table.add_column("Status")
    table.add_column("Found", justify="right")
    table.add_column("Upserted", justify="right")
    table.add_column("Message", style="dim", overflow="fold")

    for result in results:
        table.add_row(
            result.source_key,
            settings.status_markup(result.exit_status),
            str(result.items_found),
            str(result.items_upserted),
            result.message or "",
        )
    return table


@app.command("run")
def run_source(
    source: str = typer.Argument(..., help="Source key, e.g. toronto-bids-portal"),
    param: Optional[List[str]] = typer.Option(
        None,
        "--param",
        "-p",
        help="Adapter parameter override as key=value (repeatable)",
    ),
) -> None:
    """Run one source adapter.

    Examples:
        tenderfeed scrape run toronto-bids-portal
        tenderfeed scrape run alberta-purchasing -p limit=20 -p pages=3
        tenderfeed scrape run bc-bid -p cookie_header="ASP.NET_SessionId=...; CSRFToken=..."
    """
    from tenderfeed.core.config import ConfigError, parse_param_pairs
    from tenderfeed.core.credentials import SourceError
    from tenderfeed.core.orchestrator import SourceRunner

    config = settings.get_config()

    try:
        overrides = parse_param_pairs(param)
    except ConfigError as e:
        err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print(f"[bold]Running source:[/bold] {source}")

    try:
        result = asyncio.run(SourceRunner(config).run(source, overrides))
    except SourceError as e:
        err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print()
    console.print(_results_table([result], "Run Result"))

    if result.failed:
        raise typer.Exit(1)


@app.command("all")
def run_all(
    continue_on_error: bool = typer.Option(
        False,
        "--continue-on-error",
        help="Keep running the remaining sources after a failure",
    ),
    only: Optional[List[str]] = typer.Option(
        None,
        "--only",
        help="Restrict the pass to these source keys (repeatable)",
    ),
) -> None:
    """Run every enabled source in priority order.

    Examples:
        tenderfeed scrape all
        tenderfeed scrape all --continue-on-error
    """
    from tenderfeed.core.credentials import SourceError
    from tenderfeed.core.orchestrator import Orchestrator, SourceRunner

    config = settings.get_config()
    orchestrator = Orchestrator(SourceRunner(config))

    try:
        batch = asyncio.run(orchestrator.run_all(continue_on_error=continue_on_error, only=only))
    except SourceError as e:
        err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print()
    console.print(_results_table(batch.results, "Batch Results"))

    if batch.aborted:
        err_console.print("[red]Batch stopped at the first failure[/red] (use --continue-on-error to keep going)")
    if not batch.ok:
        raise typer.Exit(1)


@app.command("runs")
def list_runs(
    source: Optional[str] = typer.Option(
        None,
        "--source",
        "-s",
        help="Only show runs of this source",
    ),
    limit: int = typer.Option(
        20,
        "--limit",
        "-n",
        help="Maximum runs to show",
    ),
) -> None:
    """Show the run ledger, newest first."""
    from tenderfeed.persistence.db import get_session
    from tenderfeed.persistence.repo import RunRepository

    settings.get_config()

    with get_session() as session:
        runs = RunRepository(session).recent(source_key=source, limit=limit)

        if not runs:
            console.print("[dim]No runs recorded yet.[/dim]")
            return

        table = Table(title="Scrape Runs", show_header=True, header_style="bold magenta")
        table.add_column("ID", justify="right")
        table.add_column("Source", style="cyan")
        table.add_column("Status")
        table.add_column("Started")
        table.add_column("Duration", justify="right")
        table.add_column("Found", justify="right")
        table.add_column("Upserted", justify="right")
        table.add_column("Message", style="dim", overflow="fold")

        for run in runs:
            duration = run.duration_seconds
            table.add_row(
                str(run.id),
                run.source_site_key,
                settings.status_markup(run.status),
                run.started_at.strftime("%Y-%m-%d %H:%M:%S"),
                f"{duration:.1f}s" if duration is not None else "-",
                str(run.items_found),
                str(run.items_upserted),
                run.message or "",
            )

        console.print(table)
