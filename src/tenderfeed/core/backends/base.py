"""
Backend base classes and data structures.

Defines the interface contract for every fetching backend and the
error taxonomy adapters and the orchestrator rely on.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import orjson


@dataclass
class RequestSpec:
    """Specification for an HTTP request."""

    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    cookies: dict[str, str] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    data: dict[str, Any] | None = None
    json_data: Any = None
    content: str | bytes | None = None
    timeout: float | None = None
    follow_redirects: bool = True

    # Body markers that identify an anti-bot interstitial for this source
    block_markers: tuple[str, ...] = ()

    # Metadata for logging/debugging
    source_key: str | None = None
    page: int | None = None


@dataclass
class FetchResult:
    """Result of a fetch operation."""

    url: str
    final_url: str
    status_code: int
    text: str
    headers: dict[str, str]
    cookies: dict[str, str]

    elapsed_ms: float
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    retry_count: int = 0

    @property
    def ok(self) -> bool:
        """Check if request was successful (2xx status)."""
        return 200 <= self.status_code < 300

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "").lower()

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            ProtocolError: If the body is not valid JSON
        """
        try:
            return orjson.loads(self.text)
        except orjson.JSONDecodeError as e:
            snippet = self.text[:120].replace("\n", " ")
            raise ProtocolError(
                f"Expected JSON but received: {snippet!r}",
                url=self.final_url,
                status_code=self.status_code,
                cause=e,
            ) from e


class Backend(ABC):
    """Abstract base class for fetching backends."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier."""
        pass

    @abstractmethod
    async def fetch(self, request: RequestSpec) -> FetchResult:
        """Fetch a URL and return the response.

        Args:
            request: Request specification

        Returns:
            FetchResult with response data

        Raises:
            BackendError: On unrecoverable fetch failure
        """
        pass

    def get_cookie(self, name: str) -> str | None:
        """Look up a cookie captured from earlier responses."""
        return None

    async def close(self) -> None:
        """Clean up backend resources."""
        pass

    async def __aenter__(self) -> "Backend":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


# =============================================================================
# Errors
# =============================================================================


class BackendError(Exception):
    """Base exception for backend errors."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.cause = cause


class FetchError(BackendError):
    """Transport failure or non-success HTTP status."""
    pass


class RetryableStatusError(FetchError):
    """Server-side status (5xx) worth another attempt."""
    pass


class RateLimitError(BackendError):
    """Rate limit hit (429 or similar)."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message, url, status_code=429)
        self.retry_after = retry_after


class BlockedError(BackendError):
    """Request rejected by anti-bot measures."""
    pass


class ProtocolError(BackendError):
    """Response body did not have the structure the source promises."""
    pass


class SnapshotError(BackendError):
    """Browser snapshot fallback failed."""
    pass
