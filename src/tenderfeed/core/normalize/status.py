"""
Status policy shared by every source.

One predicate decides whether a never-seen listing may be created, and
one function derives the status shown to readers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone


OPEN_STATUSES = frozenset({"open", "active", "published"})
CLOSED_STATUSES = frozenset({"completed", "cancelled", "closed"})


@dataclass(frozen=True)
class CreationPolicy:
    """Decides whether an unseen record with a given raw status may be created.

    An allow-list policy admits only the listed statuses; a deny-list
    policy admits everything except the listed statuses. In both modes a
    missing or blank status is treated as open.
    """

    statuses: frozenset[str]
    deny: bool = False

    @classmethod
    def allow_list(cls, statuses: frozenset[str] = OPEN_STATUSES) -> "CreationPolicy":
        return cls(frozenset(s.lower() for s in statuses), deny=False)

    @classmethod
    def deny_list(cls, statuses: frozenset[str] = CLOSED_STATUSES) -> "CreationPolicy":
        return cls(frozenset(s.lower() for s in statuses), deny=True)

    def permits_creation(self, status: str | None) -> bool:
        normalized = (status or "").strip().lower()
        if not normalized:
            return True
        if self.deny:
            return normalized not in self.statuses
        return normalized in self.statuses


DEFAULT_POLICY = CreationPolicy.allow_list()


def computed_status(
    source_status: str | None,
    closing_at: datetime | None,
    now: datetime | None = None,
) -> str:
    """Reader-facing status.

    A past closing instant always wins ("Expired"), then any raw status
    mentioning an award ("Awarded"), then the raw status itself, then "Open".
    Naive datetimes are taken as UTC.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    if closing_at is not None:
        if closing_at.tzinfo is None:
            closing_at = closing_at.replace(tzinfo=timezone.utc)
        if closing_at < now:
            return "Expired"

    raw = (source_status or "").strip()
    if "award" in raw.lower():
        return "Awarded"
    return raw or "Open"
