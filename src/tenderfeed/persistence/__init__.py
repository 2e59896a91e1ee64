"""Database persistence layer."""

from .db import dispose_engine, drop_db, get_engine, get_session, init_db
from .models import Base, Project, ScrapeRun, SourceSetting
from .repo import ProjectRepository, RunRepository, SourceSettingRepository, UpsertOutcome

__all__ = [
    "get_engine",
    "get_session",
    "init_db",
    "drop_db",
    "dispose_engine",
    "Base",
    "Project",
    "ScrapeRun",
    "SourceSetting",
    "ProjectRepository",
    "RunRepository",
    "SourceSettingRepository",
    "UpsertOutcome",
]
