"""Infrastructure Ontario: project search JSON paged with ``cpage``."""

from __future__ import annotations

import math
from typing import Any, AsyncIterator

from tenderfeed.core.normalize import TenderRecord, absolute_url, clean_text, path_identifier

from .base import Page, Param, SourceAdapter

BASE_URL = "https://www.infrastructureontario.ca"
SEARCH_URL = f"{BASE_URL}/en/what-we-do/projectssearch/GetSearchResults"
FACETS = "projectstage:inprocurement"


class InfrastructureOntarioAdapter(SourceAdapter):
    key = "infrastructure-ontario-projects"
    display_name = "Infrastructure Ontario Projects"
    source_url = f"{BASE_URL}/en/what-we-do/projectssearch/?cpage=1&facets=projectstage%3Ainprocurement"
    timezone = "America/Toronto"
    location = "Ontario"

    parameters = (Param("pages", int, 10),)
    headers = {
        "Accept": "application/json, text/plain, */*",
        "Referer": source_url,
    }

    async def fetch_pages(self) -> AsyncIterator[Page]:
        max_pages = max(1, self.params["pages"])
        number = 1
        total_pages = 1

        while number <= max_pages and number <= total_pages:
            payload = await self.fetch_json_object(
                SEARCH_URL,
                page=number,
                params={"facets": FACETS, "cpage": number},
            )
            pagination = payload.get("paginationViewModel") or {}
            total_count = int(payload.get("totalCount") or 0)
            page_size = int(pagination.get("pageSize") or 6)
            total_pages = int(
                pagination.get("totalNumPage")
                or (math.ceil(total_count / page_size) if page_size > 0 else 1)
            )
            rows = (payload.get("searchResults") or {}).get("rowViewModels") or []

            yield Page(rows=rows, number=number, total_pages=total_pages, total_rows=total_count)

            if not rows:
                break
            number += 1
            if number <= max_pages and number <= total_pages:
                await self.pause()

    def normalize(self, row: dict[str, Any]) -> TenderRecord | None:
        title = clean_text(row.get("tileTitle"))
        tile_url = clean_text(row.get("tileUrl"))
        external_id = path_identifier(tile_url)
        if not title or not external_id:
            return None

        return self.record(
            external_id,
            title,
            row,
            description=clean_text(row.get("tileShortDesc")),
            source_url=absolute_url(BASE_URL, tile_url),
            source_scope="Project Stage: In Procurement",
        )
