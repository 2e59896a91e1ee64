"""
TenderFeed CLI - Main entry point.

Ingests public tender listings from Canadian procurement portals into
one catalog, with a run ledger per source.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.traceback import install as install_rich_traceback

from tenderfeed import __app_name__, __version__

from . import settings

# Load environment variables from .env (if present)
load_dotenv()

# Install rich traceback for better error display
install_rich_traceback(show_locals=False, width=120)

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name=__app_name__,
    help="Canadian public tender ingestion pipeline",
    rich_markup_mode="rich",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]{__app_name__}[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to app.yaml (default: configs/app.yaml)",
        envvar="TENDERFEED_CONFIG",
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """TenderFeed - Canadian public tender ingestion."""
    settings.config_path = config


# =============================================================================
# Import and register subcommand modules
# =============================================================================

from .commands import projects, scrape, sources  # noqa: E402

app.add_typer(scrape.app, name="scrape", help="Run source adapters")
app.add_typer(sources.app, name="sources", help="Enable, disable and configure sources")
app.add_typer(projects.app, name="projects", help="Browse the tender catalog")


# =============================================================================
# Init Command
# =============================================================================


@app.command()
def init(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration",
    ),
) -> None:
    """Initialize TenderFeed database and configuration.

    Creates required directories, a default configuration file, the
    database schema and one settings row per known source.
    """
    from rich.progress import Progress, SpinnerColumn, TextColumn

    from tenderfeed.core.sources import SOURCE_ORDER
    from tenderfeed.persistence.db import get_session
    from tenderfeed.persistence.repo import SourceSettingRepository

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Creating default configuration...", total=None)

        app_config_path = settings.config_path or Path("configs/app.yaml")
        if not app_config_path.exists() or force:
            _create_default_app_config(app_config_path)

        progress.update(task, description="Initializing database...")
        config = settings.get_config()

        progress.update(task, description="Seeding source settings...")
        with get_session() as session:
            created = SourceSettingRepository(session).seed(config.sources, known_keys=SOURCE_ORDER)

        progress.update(task, description="Done!")

    console.print()
    console.print(Panel.fit(
        "[bold green]OK - TenderFeed initialized successfully![/bold green]\n\n"
        f"  - [cyan]{app_config_path}[/cyan] - Application configuration\n"
        f"  - [cyan]{config.database.url}[/cyan] - Catalog database\n"
        f"  - {created} source setting row(s) created\n\n"
        "Next steps:\n"
        "  1. Review sources: [yellow]tenderfeed sources list[/yellow]\n"
        "  2. Run one source: [yellow]tenderfeed scrape run toronto-bids-portal[/yellow]\n"
        "  3. Run them all: [yellow]tenderfeed scrape all --continue-on-error[/yellow]",
        title="[bold]Initialization Complete[/bold]",
        border_style="green",
    ))


def _create_default_app_config(path: Path) -> None:
    """Create default app.yaml configuration."""
    default_config = """\
# TenderFeed Configuration

data_dir: data

database:
  url: sqlite:///data/tenderfeed.db
  echo: false

logging:
  level: INFO
  file: logs/tenderfeed.log
  json_format: true
  rich_console: true

http:
  timeout_seconds: 30
  max_retries: 3
  retry_wait_ms: 500
  verify_ssl: ${HTTP_VERIFY_SSL:-true}

politeness:
  page_delay_scale: 1.0

run:
  max_run_seconds: 900

snapshot:
  headless: true
  timeout_ms: 60000
  user_data_dir: data/browser-profile

# Initial settings per source; existing database rows are never overwritten
sources:
  bc-bid:
    enabled: true
    params:
      session_id: ${BC_BID_SESSION_ID:-}
      csrf_token: ${BC_BID_CSRF_TOKEN:-}
"""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(default_config, encoding="utf-8")


# =============================================================================
# Status Command
# =============================================================================


@app.command()
def status() -> None:
    """Show catalog size and the latest run of every source."""
    from rich.table import Table

    from tenderfeed.core.sources import REGISTRY, SOURCE_ORDER
    from tenderfeed.persistence.db import get_session
    from tenderfeed.persistence.repo import ProjectRepository, RunRepository, SourceSettingRepository

    settings.get_config()

    with get_session() as session:
        counts = ProjectRepository(session).count_by_source()
        latest = RunRepository(session).latest_by_source()
        enabled = SourceSettingRepository(session)

        table = Table(title="Sources", show_header=True, header_style="bold magenta")
        table.add_column("Source", style="cyan")
        table.add_column("Enabled", justify="center")
        table.add_column("Projects", justify="right")
        table.add_column("Last Run", justify="right")
        table.add_column("Status")

        for key in SOURCE_ORDER:
            last = latest.get(key)
            on = enabled.is_enabled(key)
            table.add_row(
                REGISTRY[key].display_name,
                "[green]OK[/green]" if on else "[red]x[/red]",
                str(counts.get(key, 0)),
                last.started_at.strftime("%Y-%m-%d %H:%M") if last else "Never",
                settings.status_markup(last.status) if last else "[dim]-[/dim]",
            )

        console.print()
        console.print(table)
        console.print(f"\n[bold]Total projects:[/bold] {sum(counts.values())}")


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    run()
