"""
Catalog viewing commands.
"""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from tenderfeed.cli import settings

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Browse the tender catalog",
    no_args_is_help=True,
)


@app.command("list")
def list_projects(
    source: Optional[str] = typer.Option(
        None,
        "--source",
        "-s",
        help="Filter by source key",
    ),
    status: Optional[str] = typer.Option(
        None,
        "--status",
        help="Filter by computed status (Open, Expired, Awarded, ...)",
    ),
    search: Optional[str] = typer.Option(
        None,
        "--search",
        "-q",
        help="Match title, description, solicitation number or location",
    ),
    limit: int = typer.Option(
        20,
        "--limit",
        "-n",
        help="Maximum results to show",
    ),
) -> None:
    """List projects, featured first then soonest closing.

    Examples:
        tenderfeed projects list --status Open
        tenderfeed projects list --source merx-ottawa --search paving
    """
    from tenderfeed.persistence.db import get_session
    from tenderfeed.persistence.models import utcnow
    from tenderfeed.persistence.repo import ProjectRepository

    settings.get_config()
    now = utcnow()

    with get_session() as session:
        repo = ProjectRepository(session)
        projects = repo.list_projects(
            source_key=source,
            status=status,
            search=search,
            limit=limit,
            now=now,
        )

        if not projects:
            console.print("[dim]No projects match.[/dim]")
            return

        table = Table(title="Projects", show_header=True, header_style="bold magenta")
        table.add_column("ID", justify="right")
        table.add_column("Source", style="cyan")
        table.add_column("Title", overflow="fold")
        table.add_column("Location")
        table.add_column("Closing")
        table.add_column("Status")

        for project in projects:
            computed = project.computed_status(now)
            style = {"Open": "green", "Expired": "red", "Awarded": "yellow"}.get(computed, "white")
            table.add_row(
                str(project.id),
                project.source_site_key or "manual",
                ("[bold]* [/bold]" if project.is_featured else "") + project.title,
                project.location or "",
                project.date_closing_at.strftime("%Y-%m-%d %H:%M") if project.date_closing_at else "-",
                f"[{style}]{computed}[/{style}]",
            )

        console.print(table)
        console.print(f"[dim]{len(projects)} shown of {repo.count(source)} total[/dim]")
