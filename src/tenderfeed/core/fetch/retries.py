"""
Retry utilities with tenacity.

Builds the bounded retry policy applied to every outbound request.
Government portals answer slowly and fail intermittently, so a fixed
short wait between a handful of attempts is the default.
"""

from __future__ import annotations

import logging
from typing import Any

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

logger = logging.getLogger(__name__)


DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_WAIT_MS = 500


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        wait_ms: int = DEFAULT_WAIT_MS,
        retry_exceptions: tuple[type[BaseException], ...] | None = None,
    ):
        """Initialize retry configuration.

        Args:
            max_attempts: Maximum number of attempts (1 disables retrying)
            wait_ms: Fixed wait between attempts
            retry_exceptions: Exception types to retry on
        """
        self.max_attempts = max(1, max_attempts)
        self.wait_ms = max(0, wait_ms)
        self.retry_exceptions = retry_exceptions or (Exception,)

    def wait_strategy(self) -> Any:
        return wait_fixed(self.wait_ms / 1000.0)


def build_retrying(config: RetryConfig) -> AsyncRetrying:
    """Create an AsyncRetrying controller for one logical request.

    Usage:
        async for attempt in build_retrying(config):
            with attempt:
                response = await client.get(url)

    Args:
        config: Retry configuration

    Returns:
        AsyncRetrying iterator that re-raises the last error when exhausted
    """
    return AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=config.wait_strategy(),
        retry=retry_if_exception_type(config.retry_exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
