"""MERX City of Ottawa: server-rendered result table paged with ``pageNumber``."""

from __future__ import annotations

import re
from typing import Any, AsyncIterator

from tenderfeed.core.normalize import TenderRecord, absolute_url, clean_text, first_text, parse_datetime

from .base import Page, Param, SourceAdapter
from .html import parse_document, select_attr, select_text

BASE_URL = "https://www.merx.com"
LISTING_URL = f"{BASE_URL}/cityofottawa/solicitations/open-bids"

_NOTICE_ID = re.compile(r"/(\d{7,})\b")


def notice_id(href: str | None) -> str | None:
    if not href:
        return None
    match = _NOTICE_ID.search(href)
    return match.group(1) if match else None


class MerxOttawaAdapter(SourceAdapter):
    key = "merx-ottawa"
    display_name = "MERX City of Ottawa"
    source_url = LISTING_URL
    timezone = "America/Toronto"
    location = "Ottawa, ON"

    parameters = (Param("max_pages", int, 10),)
    headers = {"Referer": LISTING_URL}

    async def fetch_pages(self) -> AsyncIterator[Page]:
        max_pages = max(1, self.params["max_pages"])
        number = 1

        while number <= max_pages:
            result = await self.fetch(
                LISTING_URL,
                page=number,
                params={
                    "sortDirection": "DESC",
                    "pageNumber": number,
                    "pageNumberSelect": 1,
                    "sortBy": "solicitationNumber",
                },
            )
            rows = self.parse_rows(result.text)
            if not rows:
                break

            yield Page(rows=rows, number=number)
            number += 1
            if number <= max_pages:
                await self.pause()

    def parse_rows(self, html: str) -> list[dict[str, Any]]:
        root = parse_document(html)
        if root is None:
            return []

        tables = root.cssselect("table.sol-table") or root.cssselect("table.mets-table")
        if not tables:
            return []

        rows = []
        for row in tables[0].cssselect("tr.mets-table-row"):
            if "mets-table-row-empty" in (row.get("class") or "").split():
                continue

            number = select_text(row, "div.sol-num")
            title = select_text(row, "div.sol-title > a")
            if not number or not title:
                continue

            rows.append(
                {
                    "solicitation_number": number,
                    "title": title,
                    "href": select_attr(row, "div.sol-title > a", "href"),
                    "location": select_text(row, "div.sol-region span") or self.location,
                    "published_raw": select_text(row, "span.sol-publication-date span.date-value"),
                    "closing_raw": select_text(row, "span.sol-closing-date span.date-value"),
                }
            )
        return rows

    def normalize(self, row: dict[str, Any]) -> TenderRecord | None:
        title = clean_text(row.get("title"))
        external_id = first_text(notice_id(row.get("href")), row.get("solicitation_number"))
        if not title or not external_id:
            return None

        published_at = parse_datetime(row.get("published_raw"), self.timezone, ("%Y/%m/%d",))
        closing_at = parse_datetime(row.get("closing_raw"), self.timezone, ("%Y/%m/%d",))

        return self.record(
            external_id,
            title,
            row,
            source_url=absolute_url(BASE_URL, row.get("href")),
            location=clean_text(row.get("location")) or self.location,
            published_at=published_at,
            date_publish_at=published_at,
            date_closing_at=closing_at,
            solicitation_number=clean_text(row.get("solicitation_number")),
            source_status="Open",
            source_timezone=self.timezone,
        )
