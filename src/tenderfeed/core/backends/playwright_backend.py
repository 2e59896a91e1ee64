"""
Playwright browser snapshot backend.

Used only as a fallback for portals whose anti-bot interstitial cannot
be passed with plain HTTP. A persistent Chromium profile is opened, the
browser check is waited out, and the rendered HTML of each results page
is captured. Callers consume nothing but the HTML strings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, TYPE_CHECKING

from .base import SnapshotError

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)


STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['en-CA', 'en'] });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
window.chrome = window.chrome || { runtime: {} };
"""

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-dev-shm-usage",
]


@dataclass
class SnapshotOptions:
    """Page structure of one snapshot target."""

    timezone_id: str = "America/Vancouver"
    ready_selector: str | None = None
    row_selector: str | None = None
    pager_button_selector: str = '.pager button[data-page-index="{index}"]'
    interstitial_title: str = "Browser check"
    load_attempts: int = 3
    extra_headers: dict[str, str] = field(default_factory=dict)


# Signature every snapshot provider satisfies: (url, max_pages, options) -> html pages
SnapshotProvider = Callable[[str, int, SnapshotOptions], Awaitable[list[str]]]

DEFAULT_BROWSER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/145.0.0.0 Safari/537.36"
)


class BrowserSnapshotter:
    """Capture rendered HTML pages from a JavaScript-guarded listing.

    Usage:
        snapshotter = BrowserSnapshotter(headless=False)
        pages = await snapshotter(url, 3, SnapshotOptions(ready_selector="#grid"))
    """

    def __init__(
        self,
        headless: bool = True,
        timeout_ms: int = 60000,
        user_agent: str | None = None,
        locale: str = "en-CA",
        user_data_dir: Path = Path("data/browser-profile"),
        stealth: bool = True,
    ):
        self.headless = headless
        self.timeout_ms = timeout_ms
        self.user_agent = user_agent or DEFAULT_BROWSER_AGENT
        self.locale = locale
        self.user_data_dir = Path(user_data_dir)
        self.stealth = stealth

    async def __call__(self, url: str, max_pages: int, options: SnapshotOptions) -> list[str]:
        return await self.snapshot(url, max_pages, options)

    async def snapshot(self, url: str, max_pages: int, options: SnapshotOptions) -> list[str]:
        """Open the URL in a real browser and return one HTML string per page.

        Args:
            url: Listing URL to load
            max_pages: Page budget (at least one page is captured)
            options: Browser and page-structure settings

        Returns:
            Rendered HTML of every captured page, in order

        Raises:
            SnapshotError: If the browser cannot be launched or the page never loads
        """
        from playwright.async_api import Error as PlaywrightError
        from playwright.async_api import async_playwright

        self.user_data_dir.mkdir(parents=True, exist_ok=True)

        try:
            async with async_playwright() as playwright:
                context = await playwright.chromium.launch_persistent_context(
                    str(self.user_data_dir),
                    headless=self.headless,
                    viewport={"width": 1400, "height": 900},
                    user_agent=self.user_agent,
                    locale=self.locale,
                    timezone_id=options.timezone_id,
                    extra_http_headers=options.extra_headers or None,
                    args=LAUNCH_ARGS,
                )
                try:
                    page = await context.new_page()
                    page.set_default_timeout(self.timeout_ms)
                    if self.stealth:
                        await page.add_init_script(STEALTH_SCRIPT)

                    await self._load(page, url, options)

                    pages = [await page.content()]
                    for index in range(1, max(1, max_pages)):
                        if not await self._next_page(page, index, options):
                            break
                        pages.append(await page.content())

                    logger.info(f"Captured {len(pages)} browser snapshot page(s) from {url}")
                    return pages
                finally:
                    await context.close()

        except PlaywrightError as e:
            raise SnapshotError(f"Browser snapshot failed: {e}", url=url, cause=e) from e

    async def _load(self, page: "Page", url: str, options: SnapshotOptions) -> None:
        """Navigate and wait until the interstitial has cleared."""
        from playwright.async_api import TimeoutError as PlaywrightTimeout

        for attempt in range(options.load_attempts):
            await page.goto(url, wait_until="networkidle")

            try:
                await page.wait_for_function(
                    "(marker) => !document.title.includes(marker)",
                    arg=options.interstitial_title,
                    timeout=self.timeout_ms,
                )
                if options.ready_selector:
                    await page.wait_for_selector(options.ready_selector, timeout=20000)
            except PlaywrightTimeout:
                logger.debug(f"Snapshot load attempt {attempt + 1} still waiting on {url}")

            if options.interstitial_title.lower() not in (await page.title()).lower():
                return

            await page.wait_for_timeout(8000)

        raise SnapshotError(
            f"Page still showing '{options.interstitial_title}' after {options.load_attempts} attempts",
            url=url,
        )

    async def _next_page(self, page: "Page", index: int, options: SnapshotOptions) -> bool:
        """Click the pager button for a page index and wait for new rows."""
        from playwright.async_api import TimeoutError as PlaywrightTimeout

        button = await page.query_selector(options.pager_button_selector.format(index=index))
        if button is None:
            return False

        first_row = None
        if options.row_selector:
            row = await page.query_selector(options.row_selector)
            if row is not None:
                first_row = await row.get_attribute("data-id")

        await button.click()
        await page.wait_for_timeout(1000)

        if options.row_selector:
            try:
                await page.wait_for_function(
                    """([selector, previous]) => {
                        const row = document.querySelector(selector);
                        return row && row.getAttribute('data-id') !== previous;
                    }""",
                    arg=[options.row_selector, first_row],
                    timeout=15000,
                )
            except PlaywrightTimeout:
                logger.warning(f"Rows did not change after moving to page {index + 1}")

        return True
