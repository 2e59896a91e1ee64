"""Alberta Purchasing Connection: JSON search API paged by offset/limit."""

from __future__ import annotations

import math
from typing import Any, AsyncIterator

from tenderfeed.core.normalize import TenderRecord, clean_text, first_text, parse_datetime, text_list

from .base import Page, Param, SourceAdapter

API_URL = "https://purchasing.alberta.ca/api/opportunity/search"
FRONTEND_URL = "https://purchasing.alberta.ca"


def search_body(limit: int, offset: int) -> dict[str, Any]:
    """Search request matching what the public site sends, newest postings first."""
    return {
        "query": "",
        "queryMode": "standard",
        "includeEnhancedMatchIds": False,
        "filter": {
            "solicitationNumber": "",
            "categories": [],
            "statuses": [],
            "agreementTypes": [],
            "solicitationTypes": [],
            "opportunityTypes": [],
            "deliveryRegions": [],
            "deliveryRegion": "",
            "organizations": [],
            "unspsc": [],
            "postDateRange": "$$custom",
            "closeDateRange": "$$custom",
            "onlyBookmarked": False,
            "onlyInterestExpressed": False,
        },
        "limit": limit,
        "offset": offset,
        "sortOptions": [{"field": "PostDateTime", "direction": "desc"}],
    }


class AlbertaPurchasingAdapter(SourceAdapter):
    key = "alberta-purchasing"
    display_name = "Alberta Purchasing Connection"
    source_url = f"{FRONTEND_URL}/search"
    timezone = "America/Edmonton"
    location = "Alberta"

    parameters = (Param("limit", int, 50), Param("pages", int, 10))
    page_delay_ms = 250
    headers = {
        "Accept": "application/json, text/plain, */*",
        "Origin": FRONTEND_URL,
        "Referer": f"{FRONTEND_URL}/search",
    }

    async def fetch_pages(self) -> AsyncIterator[Page]:
        limit = max(1, self.params["limit"])
        max_pages = max(1, self.params["pages"])

        number = 1
        total_pages = 1
        # The API counts offsets from 1
        offset = 1

        while number <= max_pages and number <= total_pages:
            payload = await self.fetch_json_object(
                API_URL,
                page=number,
                method="POST",
                json_data=search_body(limit, offset),
            )
            total_count = int(payload.get("totalCount") or 0)
            total_pages = math.ceil(total_count / limit)
            rows = payload.get("values") or []

            yield Page(rows=rows, number=number, total_pages=total_pages, total_rows=total_count)

            if not rows:
                break
            number += 1
            offset += limit
            if number <= max_pages and number <= total_pages:
                await self.pause()

    def normalize(self, row: dict[str, Any]) -> TenderRecord | None:
        external_id = clean_text(row.get("id"))
        title = first_text(row.get("title"), row.get("shortTitle"))
        if not external_id or not title:
            return None

        post_date = parse_datetime(row.get("postDateTime"), self.timezone)
        close_date = parse_datetime(row.get("closeDateTime"), self.timezone)
        regions = text_list(row.get("regionOfDelivery"))
        organization = clean_text(row.get("contractingOrganization"))

        return self.record(
            external_id,
            title,
            row,
            description=clean_text(row.get("projectDescription")),
            source_url=clean_text(row.get("externalOriginLink"))
            or f"{FRONTEND_URL}/opportunity/{external_id}",
            location=", ".join(regions) if regions else self.location,
            published_at=post_date,
            date_publish_at=post_date,
            date_closing_at=close_date,
            solicitation_number=clean_text(row.get("solicitationNumber")),
            solicitation_type=clean_text(row.get("solicitationTypeCode")),
            purchasing_group=organization,
            buyer_name=organization,
            source_status=clean_text(row.get("statusCode")),
            source_scope=clean_text(row.get("opportunityTypeCode")),
            source_timezone=self.timezone,
        )
