"""
Logging for TenderFeed.

Every ingestion run logs through a logger bound to its source key and
ledger run id, so console lines and JSON log lines can be traced back to
a row in the run ledger.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, MutableMapping

import orjson
from rich.console import Console
from rich.markup import escape

ROOT_LOGGER = "tenderfeed"

# Record attributes carried into JSON log lines
CONTEXT_FIELDS = ("source", "run_id", "url", "page", "status")

# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "tzlocal")

PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


# =============================================================================
# Formatters and Handlers
# =============================================================================


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with the run context of the record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, getattr(record, key)) for key in CONTEXT_FIELDS if getattr(record, key, None) is not None
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return orjson.dumps(entry, default=str).decode("utf-8")


class RichConsoleHandler(logging.Handler):
    """Coloured console lines prefixed with ``[source#run]``."""

    LEVEL_STYLES = {
        logging.DEBUG: "dim",
        logging.WARNING: "yellow",
        logging.ERROR: "red",
        logging.CRITICAL: "bold red",
    }

    def __init__(self, console: Console | None = None, level: int = logging.NOTSET):
        super().__init__(level)
        self.console = console or Console(stderr=True)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            text = escape(self.format(record))
            style = self.LEVEL_STYLES.get(record.levelno)
            if style:
                text = f"[{style}]{text}[/{style}]"

            self.console.print(f"{_context_prefix(record)}{text}", highlight=False)

            if record.exc_info and record.levelno >= logging.ERROR:
                self.console.print_exception(max_frames=5)
        except Exception:
            self.handleError(record)


def _context_prefix(record: logging.LogRecord) -> str:
    source = getattr(record, "source", None)
    if not source:
        return ""
    run_id = getattr(record, "run_id", None)
    tag = f"{source}#{run_id}" if run_id else source
    return f"[cyan]\\[{escape(tag)}][/cyan] "


# =============================================================================
# Setup
# =============================================================================


def setup_logging(
    level: str = "INFO",
    log_file: Path | str | None = None,
    json_format: bool = True,
    rich_console: bool = True,
) -> logging.Logger:
    """Configure the ``tenderfeed`` logger tree.

    Args:
        level: Console log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file that receives every record at DEBUG
        json_format: Write the file as JSON lines instead of plain text
        rich_console: Colour console output with rich

    Returns:
        The package root logger
    """
    numeric = getattr(logging, level.upper())

    root = logging.getLogger(ROOT_LOGGER)
    root.handlers.clear()
    root.setLevel(logging.DEBUG if log_file else numeric)

    if rich_console:
        console: logging.Handler = RichConsoleHandler()
        console.setFormatter(logging.Formatter("%(message)s"))
    else:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(logging.Formatter(PLAIN_FORMAT))
    console.setLevel(numeric)
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            JSONFormatter() if json_format else logging.Formatter(PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        )
        root.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))

    return root


# =============================================================================
# Run Context
# =============================================================================


class SourceLogger(logging.LoggerAdapter):
    """Adds ``source`` and ``run_id`` to every record, keeping caller extras."""

    def __init__(self, logger: logging.Logger, source: str, run_id: int | None = None):
        super().__init__(logger, {"source": source, "run_id": run_id})

    @property
    def source(self) -> str:
        return self.extra["source"]

    @property
    def run_id(self) -> int | None:
        return self.extra["run_id"]

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def source_logger(source: str, run_id: int | None = None) -> SourceLogger:
    """Logger for one source run, named ``tenderfeed.sources.<source>``."""
    return SourceLogger(logging.getLogger(f"{ROOT_LOGGER}.sources.{source}"), source, run_id)
