"""
Source settings commands: enable flags and stored adapter parameters.
"""

from __future__ import annotations

from typing import List

import typer
from rich.console import Console
from rich.table import Table

from tenderfeed.cli import settings

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Enable, disable and configure sources",
    no_args_is_help=True,
)

# Parameters shown masked in listings
SECRET_PARAMS = frozenset({"session_id", "csrf_token", "cookie_header"})


def _require_known(source: str) -> None:
    from tenderfeed.core.sources import REGISTRY

    if source not in REGISTRY:
        err_console.print(f"[red]Unknown source:[/red] {source}")
        err_console.print(f"[dim]Known: {', '.join(REGISTRY)}[/dim]")
        raise typer.Exit(1)


def _format_params(params: dict) -> str:
    shown = []
    for key, value in sorted(params.items()):
        if key in SECRET_PARAMS and value:
            value = "***"
        shown.append(f"{key}={value}")
    return ", ".join(shown)


@app.command("list")
def list_sources() -> None:
    """List every source with its enable flag, parameters and latest run."""
    from tenderfeed.core.sources import REGISTRY, SOURCE_ORDER
    from tenderfeed.persistence.db import get_session
    from tenderfeed.persistence.repo import RunRepository, SourceSettingRepository

    settings.get_config()

    with get_session() as session:
        stored = SourceSettingRepository(session).get_all()
        latest = RunRepository(session).latest_by_source()

        table = Table(title="Sources", show_header=True, header_style="bold magenta")
        table.add_column("#", justify="right")
        table.add_column("Key", style="cyan")
        table.add_column("Name")
        table.add_column("Enabled", justify="center")
        table.add_column("Params", overflow="fold")
        table.add_column("Last Run")

        for position, key in enumerate(SOURCE_ORDER, start=1):
            adapter = REGISTRY[key]
            setting = stored.get(key)
            enabled = setting.is_enabled if setting else True
            last = latest.get(key)
            table.add_row(
                str(position),
                key,
                adapter.display_name,
                "[green]yes[/green]" if enabled else "[red]no[/red]",
                _format_params(dict(setting.settings or {}) if setting else {}),
                (
                    f"{settings.status_markup(last.status)} {last.started_at:%Y-%m-%d %H:%M}"
                    if last
                    else "[dim]never[/dim]"
                ),
            )

        console.print(table)


def _set_enabled(source: str, enabled: bool) -> None:
    from tenderfeed.persistence.db import get_session
    from tenderfeed.persistence.repo import SourceSettingRepository

    _require_known(source)
    settings.get_config()

    with get_session() as session:
        SourceSettingRepository(session).set_enabled(source, enabled)

    state = "[green]enabled[/green]" if enabled else "[red]disabled[/red]"
    console.print(f"{source} {state}")


@app.command("enable")
def enable(source: str = typer.Argument(..., help="Source key")) -> None:
    """Enable a source."""
    _set_enabled(source, True)


@app.command("disable")
def disable(source: str = typer.Argument(..., help="Source key")) -> None:
    """Disable a source; full passes and single runs skip it."""
    _set_enabled(source, False)


@app.command("set")
def set_params(
    source: str = typer.Argument(..., help="Source key"),
    pairs: List[str] = typer.Argument(..., help="key=value pairs; an empty value removes the key"),
) -> None:
    """Store adapter parameters for a source.

    Examples:
        tenderfeed sources set merx-ottawa max_pages=5
        tenderfeed sources set bc-bid session_id=abc csrf_token=def
        tenderfeed sources set bc-bid cookie_header=
    """
    from tenderfeed.core.config import ConfigError, parse_param_pairs
    from tenderfeed.core.credentials import SourceError
    from tenderfeed.core.sources import REGISTRY
    from tenderfeed.persistence.db import get_session
    from tenderfeed.persistence.repo import SourceSettingRepository

    _require_known(source)

    try:
        parsed = parse_param_pairs(pairs)
    except ConfigError as e:
        err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    # Reject values the adapter could not use before storing them
    try:
        REGISTRY[source].coerce_params(parsed)
    except SourceError as e:
        err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    settings.get_config()
    updates = {key: (value if value != "" else None) for key, value in parsed.items()}

    with get_session() as session:
        setting = SourceSettingRepository(session).update_params(source, updates)
        stored = dict(setting.settings or {})

    console.print(f"[bold]{source}[/bold] params: {_format_params(stored) or '[dim]none[/dim]'}")
