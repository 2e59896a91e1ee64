"""Configuration and database bootstrap shared by the CLI commands."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from tenderfeed.core.config import AppConfig, ConfigError, load_app_config
from tenderfeed.core.logging import setup_logging

err_console = Console(stderr=True)

# Set by the --config option of the root command
config_path: Path | None = None

_loaded: AppConfig | None = None


def get_config() -> AppConfig:
    """Load app.yaml once per process, set up logging and bind the database.

    Exits with status 1 on an invalid configuration.
    """
    global _loaded

    if _loaded is not None:
        return _loaded

    try:
        config = load_app_config(config_path)
    except ConfigError as e:
        err_console.print(f"[red]Configuration error:[/red] {e}")
        if e.details:
            err_console.print(f"[dim]{e.details}[/dim]")
        raise typer.Exit(1)

    config.ensure_directories()
    setup_logging(
        level=config.logging.level,
        log_file=config.logging.file,
        json_format=config.logging.json_format,
        rich_console=config.logging.rich_console,
    )

    from tenderfeed.persistence.db import init_db

    init_db(config.database.url, echo=config.database.echo)

    _loaded = config
    return config


def status_markup(value: str) -> str:
    """Rich markup for a run status."""
    style = {
        "success": "green",
        "warning": "yellow",
        "failed": "red",
        "running": "cyan",
        "skipped": "dim",
    }.get(value, "white")
    return f"[{style}]{value}[/{style}]"
