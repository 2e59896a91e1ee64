"""City of Barrie (Bids & Tenders): anti-forgery token then form-POST paging."""

from __future__ import annotations

from typing import Any, AsyncIterator

from tenderfeed.core.backends import ProtocolError
from tenderfeed.core.credentials import TOKEN_COOKIES, VERIFICATION_FIELD, extract_verification_token
from tenderfeed.core.normalize import TenderRecord, clean_text, parse_datetime

from .base import Page, Param, SourceAdapter

SITE_URL = "https://barrie.bidsandtenders.ca"
MODULE_URL = f"{SITE_URL}/Module/Tenders/en"
SEARCH_URL = f"{MODULE_URL}/Tender/Search/a27a6121-d413-479f-be32-ec3d87c828b7"
DETAIL_URL = f"{MODULE_URL}/Tender/Detail"


class BarrieTendersAdapter(SourceAdapter):
    key = "barrie-bids-tenders"
    display_name = "Barrie Bids & Tenders"
    source_url = MODULE_URL
    timezone = "America/Toronto"
    location = "Barrie, ON"

    parameters = (Param("limit", int, 25), Param("pages", int, 10))
    headers = {
        "Accept": "application/json",
        "X-Requested-With": "XMLHttpRequest",
        "Referer": MODULE_URL,
        "Origin": SITE_URL,
    }

    async def fetch_pages(self) -> AsyncIterator[Page]:
        limit = max(1, self.params["limit"])
        max_pages = max(1, self.params["pages"])
        token = await self._warm_up()
        token_headers = {"RequestVerificationToken": token, "X-XSRF-TOKEN": token} if token else {}

        start = 0
        for number in range(1, max_pages + 1):
            form = {
                "status": "Open",
                "limit": limit,
                "start": start,
                "dir": "ASC",
                "from": "",
                "to": "",
                "sort": "DateClosing ASC,Id",
            }
            if token:
                form[VERIFICATION_FIELD] = token

            result = await self.fetch(SEARCH_URL, page=number, method="POST", headers=token_headers, data=form)
            if "application/json" not in result.content_type:
                raise ProtocolError("Barrie API returned non-JSON response.", url=SEARCH_URL)

            payload = result.json()
            if not isinstance(payload, dict):
                raise ProtocolError("Barrie API returned an unexpected JSON shape.", url=SEARCH_URL)
            rows = payload.get("data") or []
            total = int(payload.get("total") or 0)

            yield Page(rows=rows, number=number, total_rows=total)

            start += limit
            if not rows or start >= total or number == max_pages:
                break
            await self.pause()

    async def _warm_up(self) -> str | None:
        """Load the module page for session cookies and the anti-forgery token."""
        result = await self.fetch(MODULE_URL, headers={"Accept": "text/html,*/*"})
        cookies = {name: self.backend.get_cookie(name) for name in TOKEN_COOKIES}
        token = extract_verification_token(result.text, {k: v for k, v in cookies.items() if v})
        if not token:
            self.log.warning("No anti-forgery token found; searching without one")
        return token

    def normalize(self, row: dict[str, Any]) -> TenderRecord | None:
        external_id = clean_text(row.get("Id"))
        title = clean_text(row.get("Title"))
        if not external_id or not title:
            return None

        available_at = parse_datetime(row.get("DateAvailable"))

        return self.record(
            external_id,
            title,
            row,
            description=clean_text(row.get("Description")),
            source_url=f"{DETAIL_URL}/{external_id}",
            published_at=available_at,
            date_available_at=available_at,
            date_closing_at=parse_datetime(row.get("DateClosing")),
            source_status=clean_text(row.get("Status")),
            source_scope=clean_text(row.get("Scope")),
            source_timezone=clean_text(row.get("TimeZoneLabel")),
        )
