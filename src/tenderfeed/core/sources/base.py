"""
Source adapter base class and interfaces.

Defines the contract every portal adapter implements: drive the portal's
pagination protocol, yield raw rows page by page, and map each row onto
a :class:`TenderRecord`. Counting, the creation gate and per-record
error isolation live here so every adapter behaves the same way.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, ClassVar, Mapping

from tenderfeed.core.backends import Backend, FetchResult, ProtocolError, RequestSpec, SnapshotProvider
from tenderfeed.core.credentials import SourceError
from tenderfeed.core.fetch import pause
from tenderfeed.core.logging import SourceLogger, source_logger
from tenderfeed.core.normalize import DEFAULT_POLICY, CreationPolicy, TenderRecord
from tenderfeed.persistence.repo import ProjectRepository, UpsertOutcome

logger = logging.getLogger(__name__)

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")


# =============================================================================
# Parameters
# =============================================================================


@dataclass(frozen=True)
class Param:
    """One adapter parameter: name, type and default."""

    name: str
    kind: type = str
    default: Any = None

    def coerce(self, value: Any) -> Any:
        """Convert a raw (usually string) value to this parameter's type.

        Raises:
            SourceError: If the value cannot be converted
        """
        if value is None:
            return self.default
        if isinstance(value, str):
            value = value.strip()

        if self.kind is bool:
            if isinstance(value, bool):
                return value
            text = str(value).lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise SourceError(f"Parameter '{self.name}' expects a boolean, got {value!r}") from None

        if value == "":
            return self.default

        if self.kind is int:
            try:
                return int(value)
            except (TypeError, ValueError):
                raise SourceError(f"Parameter '{self.name}' expects an integer, got {value!r}") from None

        return str(value)


# =============================================================================
# Results
# =============================================================================


@dataclass
class AdapterResult:
    """Counters of one adapter run, updated as rows are processed."""

    items_found: int = 0
    items_upserted: int = 0
    items_skipped: int = 0
    items_invalid: int = 0
    pages_fetched: int = 0
    warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "items_found": self.items_found,
            "items_upserted": self.items_upserted,
            "items_skipped": self.items_skipped,
            "items_invalid": self.items_invalid,
            "pages_fetched": self.pages_fetched,
            "warning": self.warning,
        }


@dataclass
class Page:
    """Raw rows of one fetched page."""

    rows: list[dict[str, Any]]
    number: int = 1
    total_pages: int | None = None
    total_rows: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Adapter Base Class
# =============================================================================


class SourceAdapter(ABC):
    """Base class for portal adapters.

    Subclasses declare their identity as class attributes and implement
    :meth:`fetch_pages` (the pagination protocol) and :meth:`normalize`
    (the field mapping).
    """

    key: ClassVar[str]
    display_name: ClassVar[str]
    source_url: ClassVar[str]
    timezone: ClassVar[str] = "America/Toronto"
    location: ClassVar[str | None] = None

    creation_policy: ClassVar[CreationPolicy] = DEFAULT_POLICY
    parameters: ClassVar[tuple[Param, ...]] = ()

    # Delay between consecutive page requests
    page_delay_ms: ClassVar[int] = 0

    # Terminal message when a run sees no rows at all
    empty_warning: ClassVar[str | None] = None

    # Body fragments that identify an anti-bot interstitial
    block_markers: ClassVar[tuple[str, ...]] = ()

    # Headers sent with every request to this source
    headers: ClassVar[dict[str, str]] = {}

    def __init__(
        self,
        backend: Backend,
        params: Mapping[str, Any] | None = None,
        *,
        run_id: int | None = None,
        page_delay_scale: float = 1.0,
        snapshotter: SnapshotProvider | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            backend: Backend for making requests
            params: Raw parameter values (strings from CLI or settings)
            run_id: Ledger id of the current run, for log context
            page_delay_scale: Multiplier for the inter-page delay
            snapshotter: Browser fallback, for sources that support one
        """
        self.backend = backend
        self.params = self.coerce_params(params or {})
        self.page_delay_scale = page_delay_scale
        self.snapshotter = snapshotter
        self.result = AdapterResult()
        self.log: SourceLogger = source_logger(self.key, run_id)

    @classmethod
    def coerce_params(cls, raw: Mapping[str, Any]) -> dict[str, Any]:
        """Apply declared parameter types and defaults; unknown keys are ignored."""
        declared = {p.name: p for p in cls.parameters}
        unknown = sorted(set(raw) - set(declared))
        if unknown:
            logger.debug(f"{cls.key}: ignoring unknown parameters {unknown}")
        return {name: p.coerce(raw.get(name)) for name, p in declared.items()}

    # -------------------------------------------------------------------------
    # Contract
    # -------------------------------------------------------------------------

    @abstractmethod
    def fetch_pages(self) -> AsyncIterator[Page]:
        """Drive the source's pagination protocol.

        Yields:
            One Page per fetched page, in order
        """

    @abstractmethod
    def normalize(self, row: dict[str, Any]) -> TenderRecord | None:
        """Map one raw row onto the canonical record.

        Returns:
            The record, or None when the row lacks a required field
        """

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    async def run(self, projects: ProjectRepository) -> AdapterResult:
        """Fetch every page and offer each row to the catalog.

        Rows are committed page by page so work done before a failure is kept.

        Args:
            projects: Repository bound to the session rows are written through

        Returns:
            The run's counters (also available as ``self.result`` while running)
        """
        async for page in self.fetch_pages():
            self.result.pages_fetched += 1
            for row in page.rows:
                self.result.items_found += 1
                self._ingest(row, projects)
            projects.session.commit()
            self.log.debug(
                f"Page {page.number}: {len(page.rows)} rows",
                extra={"page": page.number},
            )

        if self.result.items_found == 0 and self.empty_warning:
            self.result.warning = self.empty_warning
            self.log.warning(self.empty_warning)

        self.log.info(
            f"Ingested {self.result.items_upserted} of {self.result.items_found} "
            f"{self.display_name} opportunities"
        )
        return self.result

    def _ingest(self, row: dict[str, Any], projects: ProjectRepository) -> None:
        try:
            record = self.normalize(row)
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            self.result.items_invalid += 1
            self.log.warning(f"Skipping malformed row: {e}")
            return

        if record is None:
            self.result.items_invalid += 1
            self.log.warning("Skipping row without identifier or title")
            return

        outcome = projects.upsert(record, self.creation_policy)
        if outcome.counts_as_upserted:
            self.result.items_upserted += 1
        elif outcome is UpsertOutcome.SKIPPED:
            self.result.items_skipped += 1

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def record(self, external_id: str, title: str, row: dict[str, Any], **fields: Any) -> TenderRecord:
        """Build a record carrying this source's identity and provenance."""
        fields.setdefault("location", self.location)
        fields.setdefault("source_site_name", self.display_name)
        return TenderRecord(
            source_key=self.key,
            external_id=str(external_id),
            title=title,
            source_raw=row,
            **fields,
        )

    def request(self, url: str, *, page: int | None = None, **kwargs: Any) -> RequestSpec:
        headers = {**self.headers, **kwargs.pop("headers", {})}
        return RequestSpec(
            url=url,
            headers=headers,
            block_markers=kwargs.pop("block_markers", self.block_markers),
            source_key=self.key,
            page=page,
            **kwargs,
        )

    async def fetch(self, url: str, *, page: int | None = None, **kwargs: Any) -> FetchResult:
        return await self.backend.fetch(self.request(url, page=page, **kwargs))

    async def fetch_json(self, url: str, *, page: int | None = None, **kwargs: Any) -> Any:
        """Fetch and decode a JSON body.

        Raises:
            ProtocolError: If the body is not JSON
        """
        result = await self.fetch(url, page=page, **kwargs)
        return result.json()

    async def fetch_json_object(self, url: str, *, page: int | None = None, **kwargs: Any) -> dict[str, Any]:
        """Fetch a JSON body that must be an object."""
        payload = await self.fetch_json(url, page=page, **kwargs)
        if not isinstance(payload, dict):
            raise ProtocolError(
                f"{self.display_name} returned {type(payload).__name__} where an object was expected",
                url=url,
            )
        return payload

    async def pause(self) -> None:
        """Inter-page delay."""
        await pause(int(self.page_delay_ms * self.page_delay_scale))
