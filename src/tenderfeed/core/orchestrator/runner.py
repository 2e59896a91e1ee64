"""
Source runner orchestrator.

Coordinates one adapter run: settings → ledger start → fetch/normalize/upsert
→ ledger finish. Every started run is closed with a terminal status, even
when the adapter raises or overruns its time budget.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from sqlalchemy.orm import Session

from tenderfeed.core.backends import Backend, BrowserSnapshotter, HttpBackend, SnapshotProvider
from tenderfeed.core.config.models import AppConfig, RunStatus
from tenderfeed.core.fetch import HostThrottle, PolitenessWindow, RetryConfig
from tenderfeed.core.logging import source_logger
from tenderfeed.core.sources import SOURCE_ORDER, AdapterResult, SourceAdapter, get_adapter_class
from tenderfeed.persistence.db import get_session
from tenderfeed.persistence.repo import ProjectRepository, RunRepository, SourceSettingRepository

logger = logging.getLogger(__name__)

SKIPPED = "skipped"

SessionScope = Callable[[], AbstractContextManager[Session]]
BackendFactory = Callable[[AppConfig], Backend]


@dataclass
class RunResult:
    """Outcome of one source run as reported to callers."""

    source_key: str
    exit_status: str
    items_found: int = 0
    items_upserted: int = 0
    message: str | None = None
    run_id: int | None = None

    @property
    def failed(self) -> bool:
        return self.exit_status == RunStatus.FAILED.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_key": self.source_key,
            "exit_status": self.exit_status,
            "items_found": self.items_found,
            "items_upserted": self.items_upserted,
            "message": self.message,
            "run_id": self.run_id,
        }


@dataclass
class BatchResult:
    """Outcome of a pass over several sources."""

    results: list[RunResult] = field(default_factory=list)
    aborted: bool = False

    @property
    def ok(self) -> bool:
        return not any(r.failed for r in self.results)

    @property
    def failed(self) -> list[RunResult]:
        return [r for r in self.results if r.failed]


def build_http_backend(config: AppConfig) -> Backend:
    """HTTP backend configured from the application settings."""
    window = PolitenessWindow(config.politeness.min_delay_ms, config.politeness.max_delay_ms)

    return HttpBackend(
        timeout=config.http.timeout_seconds,
        retry=RetryConfig(max_attempts=config.http.max_retries, wait_ms=config.http.retry_wait_ms),
        user_agent=config.http.user_agent,
        verify_ssl=config.http.verify_ssl,
        throttle=HostThrottle(window) if window.active else None,
    )


class SourceRunner:
    """Runs single sources against the catalog and the run ledger.

    Usage:
        runner = SourceRunner(config)
        result = await runner.run("toronto-bids-portal", {"limit": "25"})
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        session_scope: SessionScope = get_session,
        backend_factory: BackendFactory | None = None,
        snapshotter: SnapshotProvider | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            config: Application configuration
            session_scope: Context manager factory yielding a committed-on-exit session
            backend_factory: Builds a fresh backend per run (default: HttpBackend)
            snapshotter: Browser fallback handed to adapters that support one
        """
        self.config = config
        self.session_scope = session_scope
        self.backend_factory = backend_factory or build_http_backend
        self.snapshotter = snapshotter or BrowserSnapshotter(
            **config.snapshot.model_dump(exclude_none=True)
        )

    def is_enabled(self, source_key: str) -> bool:
        with self.session_scope() as session:
            return SourceSettingRepository(session).is_enabled(source_key)

    def resolve_params(self, source_key: str, overrides: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Adapter parameters: configured seeds, then stored settings, then overrides."""
        seeded = self.config.sources.get(source_key)
        with self.session_scope() as session:
            stored = SourceSettingRepository(session).params(source_key)
        return {
            **(seeded.params if seeded is not None else {}),
            **stored,
            **(overrides or {}),
        }

    async def run(self, source_key: str, overrides: Mapping[str, Any] | None = None) -> RunResult:
        """Run one source end to end.

        Args:
            source_key: Registered source key
            overrides: Parameter values for this run only

        Returns:
            RunResult; disabled sources are skipped without a ledger row

        Raises:
            SourceError: If the source key is unknown
        """
        adapter_cls = get_adapter_class(source_key)

        if not self.is_enabled(source_key):
            logger.warning(f"Source {source_key} is disabled; not running it")
            return RunResult(source_key, SKIPPED, message="Source is disabled")

        params = self.resolve_params(source_key, overrides)

        with self.session_scope() as session:
            run_id = RunRepository(session).start(source_key).id

        log = source_logger(source_key, run_id)
        log.info(f"Starting run with {len(params)} parameter(s)")

        backend = self.backend_factory(self.config)
        counters = AdapterResult()
        status = RunStatus.FAILED
        message: str | None = None

        try:
            adapter = adapter_cls(
                backend,
                params,
                run_id=run_id,
                page_delay_scale=self.config.politeness.page_delay_scale,
                snapshotter=self.snapshotter,
            )
            counters = adapter.result
            await self._run_adapter(adapter)

            if counters.warning:
                status, message = RunStatus.WARNING, counters.warning
            else:
                status = RunStatus.SUCCESS

        except asyncio.TimeoutError:
            message = f"Run exceeded {self.config.run.max_run_seconds:g} seconds"
            log.error(message)

        except Exception as e:
            message = str(e) or type(e).__name__
            log.exception(f"Run failed: {message}")

        finally:
            await backend.close()
            with self.session_scope() as session:
                RunRepository(session).finish(
                    run_id,
                    status.value,
                    items_found=counters.items_found,
                    items_upserted=counters.items_upserted,
                    message=message,
                )

        log.info(
            f"Finished: {counters.items_upserted} upserted of {counters.items_found} found",
            extra={"status": status.value},
        )
        return RunResult(
            source_key=source_key,
            exit_status=status.value,
            items_found=counters.items_found,
            items_upserted=counters.items_upserted,
            message=message,
            run_id=run_id,
        )

    async def _run_adapter(self, adapter: SourceAdapter) -> None:
        with self.session_scope() as session:
            work = adapter.run(ProjectRepository(session))
            limit = self.config.run.max_run_seconds
            if limit:
                await asyncio.wait_for(work, timeout=limit)
            else:
                await work


class Orchestrator:
    """Runs every enabled source in catalogue order."""

    def __init__(self, runner: SourceRunner):
        self.runner = runner

    async def run_all(
        self,
        continue_on_error: bool = False,
        only: Iterable[str] | None = None,
    ) -> BatchResult:
        """Run sources one after another.

        Args:
            continue_on_error: Keep going after a failed source
            only: Restrict the pass to these keys (catalogue order is kept)

        Returns:
            BatchResult whose ``ok`` is False when any source failed
        """
        selected = set(only) if only is not None else None
        if selected is not None:
            for key in selected:
                get_adapter_class(key)

        batch = BatchResult()
        for key in SOURCE_ORDER:
            if selected is not None and key not in selected:
                continue

            if not self.runner.is_enabled(key):
                logger.warning(f"Skipping disabled source {key}")
                continue

            result = await self.runner.run(key)
            batch.results.append(result)

            if result.failed and not continue_on_error:
                logger.error(f"Stopping after {key} failed: {result.message}")
                batch.aborted = True
                break

        return batch
