"""
Repository pattern for database operations.

Provides the upsert engine for tender listings (creation gate plus
change detection), the run ledger, and persisted per-source settings.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tenderfeed.core.normalize import DEFAULT_POLICY, CreationPolicy, TenderRecord

from .models import Project, ScrapeRun, SourceSetting, utcnow

logger = logging.getLogger(__name__)


class UpsertOutcome(str, Enum):
    """Result of offering one candidate record to the catalog."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"

    @property
    def counts_as_upserted(self) -> bool:
        return self in (UpsertOutcome.CREATED, UpsertOutcome.UPDATED)


# =============================================================================
# Project Repository
# =============================================================================


class ProjectRepository:
    """Repository for Project rows, keyed by (source_site_key, source_external_id)."""

    # Administrative columns a scrape never writes on update
    PROTECTED_FIELDS = frozenset({"is_featured", "is_manual_entry", "deleted_at"})

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, project_id: int) -> Project | None:
        return self.session.get(Project, project_id)

    def get_by_identity(self, source_key: str, external_id: str) -> Project | None:
        """Get a project by its source identity, soft-deleted rows included."""
        stmt = select(Project).where(
            and_(
                Project.source_site_key == source_key,
                Project.source_external_id == external_id,
            )
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def upsert(self, record: TenderRecord, policy: CreationPolicy = DEFAULT_POLICY) -> UpsertOutcome:
        """Create or update a project from a normalized candidate.

        Creation of a never-seen record is gated on ``policy``; updates of
        tracked records always apply so status transitions are captured.

        Args:
            record: Normalized candidate
            policy: Creation gate for unseen records

        Returns:
            What the call did to the catalog
        """
        columns = record.to_columns()
        existing = self.get_by_identity(record.source_key, record.external_id)

        if existing is None:
            if not policy.permits_creation(record.source_status):
                logger.debug(
                    "Skipping creation of %s/%s with status %r",
                    record.source_key,
                    record.external_id,
                    record.source_status,
                )
                return UpsertOutcome.SKIPPED

            try:
                with self.session.begin_nested():
                    self.session.add(Project(**columns, is_manual_entry=False))
                    self.session.flush()
                return UpsertOutcome.CREATED
            except IntegrityError:
                # A concurrent writer inserted the same identity first
                existing = self.get_by_identity(record.source_key, record.external_id)
                if existing is None:
                    raise
                logger.info(
                    "Duplicate insert for %s/%s degraded to update",
                    record.source_key,
                    record.external_id,
                )

        changed = self._apply(existing, columns)
        if not changed:
            return UpsertOutcome.UNCHANGED

        self.session.flush()
        return UpsertOutcome.UPDATED

    def _apply(self, project: Project, columns: Mapping[str, Any]) -> list[str]:
        """Write differing mutable columns onto ``project``; returns the changed names."""
        changed: list[str] = []
        for name, value in columns.items():
            if name in self.PROTECTED_FIELDS:
                continue
            current = getattr(project, name)
            if isinstance(current, datetime) and isinstance(value, datetime):
                # Storage drops sub-second precision on some backends
                if current.replace(microsecond=0) == value.replace(microsecond=0):
                    continue
            elif current == value:
                continue
            setattr(project, name, value)
            changed.append(name)
        return changed

    def list_projects(
        self,
        source_key: str | None = None,
        status: str | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
        include_deleted: bool = False,
        now: datetime | None = None,
    ) -> list[Project]:
        """List projects, featured first then by closing date.

        ``status`` filters on the computed status (case-insensitive), so it
        is applied after loading.
        """
        stmt = select(Project)

        conditions = []
        if not include_deleted:
            conditions.append(Project.deleted_at.is_(None))
        if source_key is not None:
            conditions.append(Project.source_site_key == source_key)
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    Project.title.ilike(pattern),
                    Project.description.ilike(pattern),
                    Project.solicitation_number.ilike(pattern),
                    Project.location.ilike(pattern),
                )
            )
        if conditions:
            stmt = stmt.where(and_(*conditions))

        stmt = stmt.order_by(
            Project.is_featured.desc(),
            Project.date_closing_at.asc().nullslast(),
            Project.id.desc(),
        )

        if status is None:
            stmt = stmt.limit(limit).offset(offset)
            return list(self.session.execute(stmt).scalars().all())

        wanted = status.strip().lower()
        matched = [
            project
            for project in self.session.execute(stmt).scalars()
            if project.computed_status(now).lower() == wanted
        ]
        return matched[offset : offset + limit]

    def count_by_source(self) -> dict[str, int]:
        """Count live projects grouped by source key."""
        stmt = (
            select(Project.source_site_key, func.count(Project.id))
            .where(Project.deleted_at.is_(None))
            .group_by(Project.source_site_key)
        )
        return {key or "manual": count for key, count in self.session.execute(stmt).all()}

    def count(self, source_key: str | None = None) -> int:
        """Count live projects, optionally for one source."""
        stmt = select(func.count(Project.id)).where(Project.deleted_at.is_(None))
        if source_key is not None:
            stmt = stmt.where(Project.source_site_key == source_key)
        return self.session.execute(stmt).scalar_one()

    def soft_delete(self, project_id: int) -> bool:
        """Mark a project deleted; returns False when it does not exist."""
        project = self.get_by_id(project_id)
        if project is None:
            return False
        project.deleted_at = utcnow()
        self.session.flush()
        return True


# =============================================================================
# Run Repository
# =============================================================================


class RunRepository:
    """Append-only run ledger."""

    TERMINAL_STATUSES = frozenset({"success", "warning", "failed"})

    def __init__(self, session: Session):
        self.session = session

    def start(self, source_key: str) -> ScrapeRun:
        """Open a ledger row in the running state."""
        run = ScrapeRun(source_site_key=source_key, status="running", started_at=utcnow())
        self.session.add(run)
        self.session.flush()
        return run

    def get_by_id(self, run_id: int) -> ScrapeRun | None:
        return self.session.get(ScrapeRun, run_id)

    def finish(
        self,
        run: ScrapeRun | int,
        status: str,
        items_found: int = 0,
        items_upserted: int = 0,
        message: str | None = None,
    ) -> ScrapeRun:
        """Move a running ledger row to its terminal status.

        Raises:
            ValueError: If the status is not terminal or the run is already closed
            LookupError: If the run id is unknown
        """
        if status not in self.TERMINAL_STATUSES:
            raise ValueError(f"Not a terminal run status: {status!r}")

        if isinstance(run, int):
            found = self.get_by_id(run)
            if found is None:
                raise LookupError(f"Unknown run id: {run}")
            run = found

        if run.status != "running":
            raise ValueError(f"Run {run.id} already finished with status {run.status!r}")

        run.status = status
        run.finished_at = utcnow()
        run.items_found = items_found
        run.items_upserted = items_upserted
        run.message = message
        self.session.flush()
        return run

    def latest_for_source(self, source_key: str) -> ScrapeRun | None:
        stmt = (
            select(ScrapeRun)
            .where(ScrapeRun.source_site_key == source_key)
            .order_by(ScrapeRun.started_at.desc(), ScrapeRun.id.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def latest_by_source(self) -> dict[str, ScrapeRun]:
        """Most recent run per source key."""
        latest_ids = select(func.max(ScrapeRun.id)).group_by(ScrapeRun.source_site_key)
        stmt = select(ScrapeRun).where(ScrapeRun.id.in_(latest_ids))
        return {run.source_site_key: run for run in self.session.execute(stmt).scalars()}

    def recent(self, source_key: str | None = None, limit: int = 20) -> Sequence[ScrapeRun]:
        stmt = select(ScrapeRun)
        if source_key is not None:
            stmt = stmt.where(ScrapeRun.source_site_key == source_key)
        stmt = stmt.order_by(ScrapeRun.started_at.desc(), ScrapeRun.id.desc()).limit(limit)
        return self.session.execute(stmt).scalars().all()


# =============================================================================
# Source Setting Repository
# =============================================================================


class SourceSettingRepository:
    """Per-source enable flag and adapter parameters."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, source_key: str) -> SourceSetting | None:
        stmt = select(SourceSetting).where(SourceSetting.source_site_key == source_key)
        return self.session.execute(stmt).scalar_one_or_none()

    def get_all(self) -> dict[str, SourceSetting]:
        return {s.source_site_key: s for s in self.session.execute(select(SourceSetting)).scalars()}

    def is_enabled(self, source_key: str) -> bool:
        """Sources without a settings row are enabled."""
        setting = self.get(source_key)
        return True if setting is None else setting.is_enabled

    def params(self, source_key: str) -> dict[str, Any]:
        setting = self.get(source_key)
        if setting is None or not setting.settings:
            return {}
        return dict(setting.settings)

    def _get_or_create(self, source_key: str) -> SourceSetting:
        setting = self.get(source_key)
        if setting is None:
            setting = SourceSetting(source_site_key=source_key, is_enabled=True, settings={})
            self.session.add(setting)
        return setting

    def set_enabled(self, source_key: str, enabled: bool) -> SourceSetting:
        setting = self._get_or_create(source_key)
        setting.is_enabled = enabled
        self.session.flush()
        return setting

    def update_params(self, source_key: str, params: Mapping[str, Any]) -> SourceSetting:
        """Merge ``params`` into the stored settings; a None value removes a key."""
        setting = self._get_or_create(source_key)
        merged = dict(setting.settings or {})
        for key, value in params.items():
            if value is None:
                merged.pop(key, None)
            else:
                merged[key] = value
        # Reassign so the JSON column is flagged dirty
        setting.settings = merged
        self.session.flush()
        return setting

    def seed(self, sources: Mapping[str, Any], known_keys: Iterable[str] = ()) -> int:
        """Create settings rows that do not exist yet; existing rows are left alone.

        Args:
            sources: Mapping of source key to an object with ``enabled`` and ``params``
            known_keys: Additional keys to create with defaults

        Returns:
            Number of rows created
        """
        seen = set(self.get_all())
        created = 0
        for key in list(sources) + list(known_keys):
            if key in seen:
                continue
            entry = sources.get(key)
            self.session.add(
                SourceSetting(
                    source_site_key=key,
                    is_enabled=entry.enabled if entry is not None else True,
                    settings=dict(entry.params) if entry is not None else {},
                )
            )
            seen.add(key)
            created += 1
        self.session.flush()
        return created
