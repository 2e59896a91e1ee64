"""
SQLAlchemy ORM models for TenderFeed.

Defines the database schema:
- Projects: the canonical tender catalog
- ScrapeRuns: append-only run ledger, one row per adapter invocation
- SourceSettings: per-source enable flag and adapter parameters
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from tenderfeed.core.normalize import computed_status, favicon_url


def utcnow() -> datetime:
    """Naive UTC timestamp (storage form for every DateTime column)."""
    return datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)


# =============================================================================
# Base Class
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        dict[str, Any]: JSON,
        list[str]: JSON,
    }


# =============================================================================
# Mixins
# =============================================================================


class TimestampMixin:
    """Mixin providing created_at and updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        default=None,
        onupdate=utcnow,
        nullable=True,
    )


# =============================================================================
# Project Model
# =============================================================================


class Project(Base, TimestampMixin):
    """A tender/procurement listing, scraped or entered by an administrator."""

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identity (null for manual entries)
    source_site_key: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    source_external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Core content
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Solicitation details
    solicitation_number: Mapped[str | None] = mapped_column(String(255), nullable=True)
    solicitation_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    solicitation_form_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    purchasing_group: Mapped[str | None] = mapped_column(String(255), nullable=True)
    high_level_category: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_divisions: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    wards: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    pre_bid_meeting: Mapped[str | None] = mapped_column(Text, nullable=True)
    contract_duration: Mapped[str | None] = mapped_column(Text, nullable=True)
    specific_conditions: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Buyer
    buyer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    buyer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    buyer_phone: Mapped[str | None] = mapped_column(String(100), nullable=True)
    buyer_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ariba_discovery_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Source status
    source_status: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    source_scope: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Instants (naive UTC)
    date_available_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    date_issue_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    date_publish_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    date_closing_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    source_timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Provenance
    source_raw: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    source_site_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Administrative
    is_manual_entry: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("source_site_key", "source_external_id", name="projects_source_unique"),
        Index("ix_projects_featured_closing", "is_featured", "date_closing_at"),
    )

    def computed_status(self, now: datetime | None = None) -> str:
        """Status shown to readers, derived at read time."""
        return computed_status(self.source_status, self.date_closing_at, now)

    @property
    def logo_url(self) -> str | None:
        return favicon_url(self.source_url)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, source='{self.source_site_key}', external_id='{self.source_external_id}')>"


# =============================================================================
# Run Ledger Model
# =============================================================================


class ScrapeRun(Base):
    """Ledger entry for one adapter invocation."""

    __tablename__ = "scrape_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_site_key: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # running -> success | warning | failed
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="running", index=True)

    started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    items_found: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    items_upserted: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    message: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at and self.started_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def __repr__(self) -> str:
        return f"<ScrapeRun(id={self.id}, source='{self.source_site_key}', status='{self.status}')>"


# =============================================================================
# Source Settings Model
# =============================================================================


class SourceSetting(Base, TimestampMixin):
    """Persisted enable flag and adapter parameters for one source."""

    __tablename__ = "scraper_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_site_key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    settings: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<SourceSetting(source='{self.source_site_key}', enabled={self.is_enabled})>"
