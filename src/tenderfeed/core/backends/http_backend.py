"""
HTTP Backend implementation using httpx.

Provides async HTTP fetching with:
- Browser-like default headers and a recognizable bot user agent
- Session cookie persistence across requests
- Bounded retry with fixed backoff on transient failures
- Rate limit and anti-bot block detection
"""

from __future__ import annotations

import logging
import time
from typing import Any
from urllib.parse import urlparse

import httpx

from ..fetch.retries import RetryConfig, build_retrying
from ..fetch.throttling import HostThrottle
from .base import (
    Backend,
    BlockedError,
    FetchError,
    FetchResult,
    RateLimitError,
    RequestSpec,
    RetryableStatusError,
)

logger = logging.getLogger(__name__)


DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; OCN Tenders Bot/1.0)"

# Status codes that indicate blocking
BLOCKED_STATUS_CODES = {403, 406, 418, 451}

# Status codes that should trigger retry
RETRY_STATUS_CODES = {500, 502, 503, 504}

RETRYABLE_ERRORS = (httpx.TransportError, RateLimitError, RetryableStatusError)


class HttpBackend(Backend):
    """HTTP backend using httpx for async requests.

    One backend instance is used per adapter run, so the cookie jar
    doubles as the session store for portals that hand out session or
    anti-forgery cookies on a warm-up request.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        retry: RetryConfig | None = None,
        user_agent: str | None = None,
        default_headers: dict[str, str] | None = None,
        verify_ssl: bool = True,
        throttle: HostThrottle | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize HTTP backend.

        Args:
            timeout: Default request timeout in seconds
            retry: Retry policy (default: 3 attempts, 500ms apart)
            user_agent: User agent sent with every request
            default_headers: Default headers for all requests
            verify_ssl: Verify TLS certificates
            throttle: Optional per-host request spacing
            transport: Custom transport (used by tests to stub portals)
        """
        self.timeout = timeout
        self.retry = retry or RetryConfig()
        self.retry.retry_exceptions = RETRYABLE_ERRORS
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self.verify_ssl = verify_ssl
        self.throttle = throttle
        self._transport = transport

        self.default_headers = {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-CA,en;q=0.9",
            **(default_headers or {}),
        }

        self._client: httpx.AsyncClient | None = None

    @property
    def name(self) -> str:
        return "http"

    def _ensure_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                headers=self.default_headers,
                verify=self.verify_ssl,
                transport=self._transport,
            )
        return self._client

    def get_cookie(self, name: str) -> str | None:
        """Look up a cookie set by any earlier response."""
        if self._client is None:
            return None
        for cookie in self._client.cookies.jar:
            if cookie.name == name:
                return cookie.value
        return None

    def _cookie_header(self, url: str, extra: dict[str, str]) -> str:
        """Merge stored session cookies for the URL's host with request cookies."""
        host = urlparse(url).hostname or ""
        merged: dict[str, str] = {}
        if self._client is not None:
            for cookie in self._client.cookies.jar:
                domain = cookie.domain.lstrip(".")
                if not domain or host == domain or host.endswith("." + domain):
                    merged[cookie.name] = cookie.value
        merged.update(extra)
        return "; ".join(f"{k}={v}" for k, v in merged.items())

    def _check_blocked(self, response: httpx.Response, text: str, markers: tuple[str, ...]) -> None:
        """Check if response indicates blocking."""
        if response.status_code in BLOCKED_STATUS_CODES:
            raise BlockedError(
                f"Request blocked with status {response.status_code}",
                url=str(response.url),
                status_code=response.status_code,
            )

        lowered = text.lower()
        for marker in markers:
            if marker.lower() in lowered:
                raise BlockedError(
                    f"Anti-bot challenge detected: '{marker}' in response",
                    url=str(response.url),
                    status_code=response.status_code,
                )

    def _check_rate_limit(self, response: httpx.Response) -> None:
        """Check for rate limiting."""
        if response.status_code == 429:
            retry_seconds = None
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    retry_seconds = float(retry_after)
                except ValueError:
                    retry_seconds = None

            raise RateLimitError(
                "Rate limit exceeded",
                url=str(response.url),
                retry_after=retry_seconds,
            )

    def _check_status(self, response: httpx.Response) -> None:
        if response.status_code in RETRY_STATUS_CODES:
            raise RetryableStatusError(
                f"Server error {response.status_code}",
                url=str(response.url),
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise FetchError(
                f"HTTP {response.status_code} from {response.url}",
                url=str(response.url),
                status_code=response.status_code,
            )

    def _build_kwargs(self, request: RequestSpec) -> dict[str, Any]:
        headers = dict(request.headers)
        if request.cookies and "Cookie" not in headers:
            headers["Cookie"] = self._cookie_header(request.url, request.cookies)

        kwargs: dict[str, Any] = {
            "headers": headers,
            "params": request.params or None,
            "follow_redirects": request.follow_redirects,
        }
        if request.timeout is not None:
            kwargs["timeout"] = request.timeout
        if request.data is not None:
            kwargs["data"] = request.data
        if request.json_data is not None:
            kwargs["json"] = request.json_data
        if request.content is not None:
            kwargs["content"] = request.content
        return kwargs

    async def fetch(self, request: RequestSpec) -> FetchResult:
        """Fetch a URL with automatic retry.

        Args:
            request: Request specification

        Returns:
            FetchResult with response data

        Raises:
            BlockedError: Anti-bot rejection (never retried)
            RateLimitError: Still rate limited after all attempts
            FetchError: Transport failure or error status after all attempts
        """
        client = self._ensure_client()
        method = request.method.upper()
        if method not in ("GET", "POST"):
            raise FetchError(f"Unsupported method: {request.method}", url=request.url)

        kwargs = self._build_kwargs(request)
        retry_count = 0

        try:
            async for attempt in build_retrying(self.retry):
                with attempt:
                    retry_count = attempt.retry_state.attempt_number - 1

                    if self.throttle is not None:
                        await self.throttle.wait(str(request.url))

                    started = time.monotonic()
                    response = await client.request(method, request.url, **kwargs)
                    elapsed_ms = (time.monotonic() - started) * 1000

                    self._check_rate_limit(response)
                    text = response.text
                    self._check_blocked(response, text, request.block_markers)
                    self._check_status(response)

                    logger.debug(
                        f"{method} {response.url} -> {response.status_code} ({elapsed_ms:.0f}ms)",
                        extra={"url": str(response.url), "page": request.page},
                    )

                    return FetchResult(
                        url=request.url,
                        final_url=str(response.url),
                        status_code=response.status_code,
                        text=text,
                        headers={k.lower(): v for k, v in response.headers.items()},
                        cookies=dict(response.cookies),
                        elapsed_ms=elapsed_ms,
                        retry_count=retry_count,
                    )

        except (BlockedError, RateLimitError, FetchError):
            raise
        except httpx.TransportError as e:
            raise FetchError(
                f"Transport error after {retry_count + 1} attempts: {e}",
                url=request.url,
                cause=e,
            ) from e

        raise FetchError(f"No response for {request.url}", url=request.url)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
