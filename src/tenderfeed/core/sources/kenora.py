"""City of Kenora: a single list view of tender documents."""

from __future__ import annotations

from typing import Any, AsyncIterator

from tenderfeed.core.normalize import TenderRecord, absolute_url, clean_text, content_hash, path_identifier

from .base import Page, SourceAdapter
from .html import node_text, parse_document

BASE_URL = "https://listview.kenora.ca"
LIST_URL = f"{BASE_URL}/Listview.aspx?root=Tenders&wmode=transparent"


class KenoraTendersAdapter(SourceAdapter):
    key = "kenora-tenders"
    display_name = "City of Kenora Tenders"
    source_url = LIST_URL
    timezone = "America/Winnipeg"
    location = "Kenora, ON"

    headers = {"Referer": f"{BASE_URL}/"}

    async def fetch_pages(self) -> AsyncIterator[Page]:
        result = await self.fetch(LIST_URL, page=1)
        yield Page(rows=self.parse_rows(result.text), number=1, total_pages=1)

    def parse_rows(self, html: str) -> list[dict[str, Any]]:
        root = parse_document(html)
        if root is None:
            return []

        rows = []
        for link in root.cssselect("table#dgFileList a[href]"):
            href = (link.get("href") or "").strip()
            title = node_text(link)
            if href and title:
                rows.append({"title": title, "href": href})
        return rows

    def normalize(self, row: dict[str, Any]) -> TenderRecord | None:
        href = clean_text(row.get("href"))
        title = clean_text(row.get("title"))
        if not href or not title:
            return None

        return self.record(
            path_identifier(href) or content_hash(href),
            title,
            row,
            source_url=absolute_url(BASE_URL, href),
            source_status="Open",
            source_timezone=self.timezone,
        )
