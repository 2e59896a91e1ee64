"""Prince Edward Island tenders: workflow JSON endpoint, one request per publication year."""

from __future__ import annotations

from datetime import datetime
from typing import Any, AsyncIterator, Iterable
from zoneinfo import ZoneInfo

from tenderfeed.core.normalize import TenderRecord, clean_text, first_text, parse_datetime

from .base import Page, Param, SourceAdapter

API_URL = "https://wdf.princeedwardisland.ca/api/workflow"
SITE_URL = "https://www.princeedwardisland.ca/en/feature/search-for-tenders-and-procurement-opportunities/"
TENDER_VIEW_URL = f"{SITE_URL}#/service/Tenders/TenderView"


def workflow_body(year: int) -> dict[str, Any]:
    return {
        "appName": "Tenders",
        "featureName": "Tenders",
        "metaVars": {"service_id": None, "save_location": None},
        "queryVars": {
            "keyword": None,
            "category": None,
            "status": "Open",
            "organization": None,
            "publication_year": str(year),
            "wdf_url_query": "true",
            "service": "Tenders",
            "activity": "TenderSearch",
        },
        "queryName": "TenderSearch",
    }


def _children(node: Any) -> Iterable[dict[str, Any]]:
    if isinstance(node, dict):
        node = node.values()
    return (child for child in node or () if isinstance(child, dict))


def find_node(nodes: Any, node_type: str) -> dict[str, Any] | None:
    """Depth-first search of the workflow component tree for a node type."""
    for node in _children(nodes):
        if node.get("type") == node_type:
            return node
        found = find_node(node.get("children"), node_type)
        if found is not None:
            return found
    return None


def cell_text(cell: dict[str, Any]) -> str | None:
    """A cell's own text, else the first child's text."""
    text = clean_text((cell.get("data") or {}).get("text"))
    if text:
        return text
    for child in _children(cell.get("children")):
        text = clean_text((child.get("data") or {}).get("text"))
        if text:
            return text
    return None


class PeiTendersAdapter(SourceAdapter):
    key = "pei-tenders"
    display_name = "Prince Edward Island Tenders"
    source_url = SITE_URL
    timezone = "America/Halifax"
    location = "Prince Edward Island"

    parameters = (Param("years", int, 5),)
    headers = {
        "Accept": "application/json",
        "Origin": "https://www.princeedwardisland.ca",
        "Referer": SITE_URL,
    }

    async def fetch_pages(self) -> AsyncIterator[Page]:
        years = max(1, self.params["years"])
        current_year = datetime.now(ZoneInfo(self.timezone)).year

        for offset in range(years):
            payload = await self.fetch_json_object(
                API_URL,
                page=offset + 1,
                method="POST",
                json_data=workflow_body(current_year - offset),
            )
            yield Page(rows=self.parse_rows(payload), number=offset + 1, total_pages=years)
            if offset + 1 < years:
                await self.pause()

    def parse_rows(self, payload: dict[str, Any]) -> list[dict[str, Any]]:
        table = find_node(payload.get("data"), "TableV2")
        if table is None:
            return []

        rows = []
        for row in _children(table.get("children")):
            if row.get("type") != "TableV2Row":
                continue
            cells = list(_children(row.get("children")))
            if len(cells) < 5:
                continue

            link = find_node(cells[0].get("children"), "LinkV2") or {}
            link_data = link.get("data") or {}
            number = first_text(link_data.get("text"), cell_text(cells[0]))
            title = cell_text(cells[1])
            if not number or not title:
                continue

            rows.append(
                {
                    "tender_id": clean_text((link_data.get("queryParams") or {}).get("tender_id")),
                    "solicitation_number": number,
                    "title": title,
                    "organization": cell_text(cells[2]),
                    "published_raw": cell_text(cells[3]),
                    "closing_raw": cell_text(cells[4]),
                }
            )
        return rows

    def normalize(self, row: dict[str, Any]) -> TenderRecord | None:
        external_id = first_text(row.get("tender_id"), row.get("solicitation_number"))
        title = clean_text(row.get("title"))
        if not external_id or not title:
            return None

        tender_id = row.get("tender_id")
        published_at = parse_datetime(row.get("published_raw"), self.timezone)

        return self.record(
            external_id,
            title,
            row,
            source_url=f"{TENDER_VIEW_URL}?tender_id={tender_id}" if tender_id else None,
            published_at=published_at,
            date_publish_at=published_at,
            date_closing_at=parse_datetime(row.get("closing_raw"), self.timezone),
            solicitation_number=clean_text(row.get("solicitation_number")),
            buyer_name=clean_text(row.get("organization")),
            source_status="Open",
            source_timezone=self.timezone,
        )
