"""
Canonical tender record.

Provides the clean interface between a source adapter's raw rows and
database persistence. Every adapter produces ``TenderRecord`` instances;
the upsert engine only ever sees this shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any

from .parsing import to_naive_utc


# Columns holding instants; stored as naive UTC
DATE_FIELDS = (
    "date_available_at",
    "date_issue_at",
    "date_publish_at",
    "date_closing_at",
    "published_at",
)


@dataclass
class TenderRecord:
    """Normalized tender data ready for persistence.

    ``source_key`` and ``external_id`` form the identity. All other
    fields are mutable content that later sightings may change.
    """

    # Identity
    source_key: str
    external_id: str

    # Core content
    title: str
    description: str | None = None
    location: str | None = None

    # Solicitation details
    solicitation_number: str | None = None
    solicitation_type: str | None = None
    solicitation_form_type: str | None = None
    purchasing_group: str | None = None
    high_level_category: str | None = None
    client_divisions: list[str] | None = None
    wards: list[str] | None = None
    pre_bid_meeting: str | None = None
    contract_duration: str | None = None
    specific_conditions: str | None = None

    # Buyer / organization
    buyer_name: str | None = None
    buyer_email: str | None = None
    buyer_phone: str | None = None
    buyer_location: str | None = None
    ariba_discovery_url: str | None = None

    # Status as published by the source
    source_status: str | None = None
    source_scope: str | None = None

    # Instants (timezone-aware; converted to UTC on persistence)
    date_available_at: datetime | None = None
    date_issue_at: datetime | None = None
    date_publish_at: datetime | None = None
    date_closing_at: datetime | None = None
    published_at: datetime | None = None
    source_timezone: str | None = None

    # Provenance
    source_site_name: str | None = None
    source_url: str | None = None
    source_raw: dict[str, Any] = field(default_factory=dict)

    def to_columns(self) -> dict[str, Any]:
        """Column mapping for the ``projects`` table (identity included)."""
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in DATE_FIELDS:
                value = to_naive_utc(value)
            data[f.name] = value

        data["source_site_key"] = data.pop("source_key")
        data["source_external_id"] = data.pop("external_id")
        return data
