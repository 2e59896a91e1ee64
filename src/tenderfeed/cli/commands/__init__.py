"""CLI command modules."""

from . import projects, scrape, sources

__all__ = [
    "projects",
    "scrape",
    "sources",
]
