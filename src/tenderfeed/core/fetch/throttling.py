"""
Request spacing.

Two layers keep ingestion polite. Every adapter sleeps its own known
delay between pages (``pause``). On top of that, ``HostThrottle`` can
spread every request to one host over a configured politeness window.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field
from urllib.parse import urlsplit


@dataclass(frozen=True)
class PolitenessWindow:
    """Minimum and maximum gap between two requests to the same host."""

    min_delay_ms: int = 0
    max_delay_ms: int = 0

    @property
    def active(self) -> bool:
        return self.max_delay_ms > 0

    def draw(self) -> float:
        """Random gap in seconds inside the window."""
        low = min(self.min_delay_ms, self.max_delay_ms)
        return random.uniform(low, self.max_delay_ms) / 1000.0


@dataclass
class HostThrottle:
    """Space requests per host; different hosts never wait on each other."""

    window: PolitenessWindow
    _last: dict[str, float] = field(default_factory=dict, repr=False)
    _locks: dict[str, asyncio.Lock] = field(default_factory=dict, repr=False)

    async def wait(self, url: str) -> None:
        """Block until the URL's host may receive another request."""
        host = urlsplit(url).netloc
        lock = self._locks.setdefault(host, asyncio.Lock())

        async with lock:
            last = self._last.get(host)
            if last is not None and self.window.active:
                remaining = self.window.draw() - (time.monotonic() - last)
                if remaining > 0:
                    await asyncio.sleep(remaining)
            self._last[host] = time.monotonic()


async def pause(delay_ms: float) -> None:
    """Sleep between two pages of one source."""
    if delay_ms > 0:
        await asyncio.sleep(delay_ms / 1000.0)
