"""City of Windsor bids and tenders: one static HTML table, no pagination."""

from __future__ import annotations

import re
from typing import Any, AsyncIterator

from tenderfeed.core.normalize import TenderRecord, absolute_url, clean_text, first_text, parse_datetime

from .base import Page, SourceAdapter
from .html import node_text, parse_document, select_attr, select_text

BASE_URL = "https://opendata.citywindsor.ca"
PAGE_URL = f"{BASE_URL}/Tools/BidsAndTenders"

# "Jan 05, 2026 02:00 PM EST"
DATE_FORMATS = ("%b %d, %Y %I:%M %p",)

_GUID = re.compile(r"\{([^}]+)\}")


def labelled_value(row: Any, label: str) -> str | None:
    """Text of the span following a ``<strong>`` label such as "Open" or "Close"."""
    nodes = row.xpath(
        f'.//strong[contains(normalize-space(.), "{label}")]/following-sibling::span[1]'
    )
    return node_text(nodes[0]) if nodes else None


def download_guid(href: str | None) -> str | None:
    if not href:
        return None
    match = _GUID.search(href)
    return match.group(1) if match else None


def solicitation_from_title(title: str) -> str | None:
    """Titles read "<number>, <description>"."""
    return clean_text(title.split(",", 1)[0])


class WindsorBidsAdapter(SourceAdapter):
    key = "windsor-bids-tenders"
    display_name = "Windsor Bids & Tenders"
    source_url = PAGE_URL
    timezone = "America/Toronto"
    location = "Windsor, ON"

    headers = {"Referer": PAGE_URL, "Origin": BASE_URL}

    async def fetch_pages(self) -> AsyncIterator[Page]:
        result = await self.fetch(PAGE_URL, page=1)
        yield Page(rows=self.parse_rows(result.text), number=1, total_pages=1)

    def parse_rows(self, html: str) -> list[dict[str, Any]]:
        root = parse_document(html)
        if root is None:
            return []

        containers = root.cssselect("tbody#tableBody") or root.cssselect("table#DataTables_Table_0")
        if not containers:
            return []

        rows = []
        for row in containers[0].cssselect("tr.BT_BidAndTender"):
            title = select_text(row, "span.h5")
            if not title:
                continue
            rows.append(
                {
                    "title": title,
                    "solicitation_number": solicitation_from_title(title),
                    "open_raw": labelled_value(row, "Open"),
                    "close_raw": labelled_value(row, "Close"),
                    "download_href": select_attr(row, 'a[href*="DownloadTender"]', "href"),
                }
            )
        return rows

    def normalize(self, row: dict[str, Any]) -> TenderRecord | None:
        title = clean_text(row.get("title"))
        if not title:
            return None

        external_id = first_text(
            download_guid(row.get("download_href")),
            row.get("solicitation_number"),
            title,
        )
        open_at = parse_datetime(row.get("open_raw"), self.timezone, DATE_FORMATS)
        close_at = parse_datetime(row.get("close_raw"), self.timezone, DATE_FORMATS)

        return self.record(
            external_id,
            title,
            row,
            source_url=absolute_url(BASE_URL, row.get("download_href")) or PAGE_URL,
            published_at=open_at,
            date_available_at=open_at,
            date_closing_at=close_at,
            solicitation_number=clean_text(row.get("solicitation_number")),
            # Only open bids are listed
            source_status="Open",
            source_timezone=self.timezone,
        )
