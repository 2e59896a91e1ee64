"""Toronto Bids Portal: OData JSON feed paged with ``$skip``/``$top``."""

from __future__ import annotations

from typing import Any, AsyncIterator

from tenderfeed.core.normalize import TenderRecord, clean_text, first_text, parse_datetime, text_list

from .base import Page, Param, SourceAdapter

API_URL = (
    "https://secure.toronto.ca/c3api_data/v2/DataAccess.svc/"
    "pmmd_solicitations/feis_solicitation_published"
)
PORTAL_URL = (
    "https://www.toronto.ca/business-economy/doing-business-with-the-city/"
    "searching-bidding-on-city-contracts/toronto-bids-portal/"
)


def posting_link(value: Any) -> str | None:
    """Ariba posting link, or None while the portal shows a placeholder."""
    text = clean_text(value)
    if not text or "not been posted" in text.lower() or text == "TBD":
        return None
    return text


class TorontoBidsAdapter(SourceAdapter):
    key = "toronto-bids-portal"
    display_name = "Toronto Bids Portal"
    source_url = PORTAL_URL
    timezone = "America/Toronto"
    location = "Toronto, ON"

    parameters = (Param("limit", int, 50), Param("pages", int, 10))
    headers = {"Accept": "application/json"}

    async def fetch_pages(self) -> AsyncIterator[Page]:
        limit = max(1, self.params["limit"])
        max_pages = max(1, self.params["pages"])
        skip = 0
        total: int | None = None

        for number in range(1, max_pages + 1):
            payload = await self.fetch_json_object(
                API_URL,
                page=number,
                params={
                    "$format": "application/json;odata.metadata=none",
                    "$count": "true",
                    "$skip": skip,
                    "$top": limit,
                    "$filter": "Ready_For_Posting eq 'Yes' and Status eq 'Open'",
                    "$orderby": "Closing_Date desc,Issue_Date desc",
                },
            )
            rows = payload.get("value") or []
            if total is None:
                total = int(payload.get("@odata.count") or 0)

            yield Page(rows=rows, number=number, total_rows=total)

            skip += limit
            # Without a count only an empty page or the page cap ends the feed
            if not rows or (total and skip >= total) or number == max_pages:
                break
            await self.pause()

    def normalize(self, row: dict[str, Any]) -> TenderRecord | None:
        external_id = first_text(row.get("id"), row.get("Parent_Id"))
        if not external_id:
            return None

        tz = self.timezone
        publish_at = parse_datetime(row.get("Publish_Date_Formatted") or row.get("Publish_Date"), tz)
        issue_at = parse_datetime(row.get("Issue_Date_Formatted") or row.get("Issue_Date"), tz)
        closing_at = parse_datetime(row.get("Closing_Date_Formatted") or row.get("Closing_Date"), tz)
        ariba = posting_link(row.get("Ariba_Discovery_Posting_Link"))
        category = clean_text(row.get("High_Level_Category"))

        return self.record(
            external_id,
            clean_text(row.get("Posting_Title")) or "Untitled solicitation",
            row,
            description=clean_text(row.get("Solicitation_Document_Description")),
            source_url=ariba or PORTAL_URL,
            location=clean_text(row.get("Buyer_Location")) or self.location,
            published_at=publish_at,
            date_publish_at=publish_at,
            date_issue_at=issue_at,
            date_closing_at=closing_at,
            solicitation_number=clean_text(row.get("Solicitation_Document_Number")),
            solicitation_type=clean_text(row.get("Solicitation_Document_Type")),
            solicitation_form_type=clean_text(row.get("Solicitation_Form_Type")),
            purchasing_group=clean_text(row.get("Purchasing_Group")),
            high_level_category=category,
            client_divisions=text_list(row.get("Client_Division")),
            buyer_name=clean_text(row.get("Buyer_Name")),
            buyer_email=clean_text(row.get("Buyer_Email")),
            buyer_phone=clean_text(row.get("Buyer_Phone_Number")),
            buyer_location=clean_text(row.get("Buyer_Location")),
            ariba_discovery_url=ariba,
            wards=text_list(row.get("Wards")),
            pre_bid_meeting=clean_text(row.get("Pre_Bid_Meeting")),
            contract_duration=clean_text(row.get("Contract_Duration")),
            specific_conditions=clean_text(row.get("Specific_Conditions")),
            source_status=clean_text(row.get("Status")),
            source_scope=category,
            source_timezone=tz,
        )
