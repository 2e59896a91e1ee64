"""SaskTenders: ASP.NET WebForms search page paged by postback.

The first GET establishes the session cookie and hidden form state.
Each following page is a POST of every hidden field back to the page
with ``__EVENTTARGET`` pointing at the "next page" link; the response
carries fresh hidden fields for the next round.
"""

from __future__ import annotations

import math
from typing import Any, AsyncIterator
from urllib.parse import parse_qs, urlparse

from tenderfeed.core.credentials import extract_hidden_fields
from tenderfeed.core.normalize import TenderRecord, clean_text, first_text, parse_datetime

from .base import Page, Param, SourceAdapter
from .html import node_text, parse_document

SEARCH_URL = "https://sasktenders.ca/content/public/Search.aspx"
PRINT_URL = "https://sasktenders.ca/content/public/print.aspx"

FIELD_PREFIX = "ctl00$ContentPlaceHolder1$"
ROW_COUNT_FIELD = f"{FIELD_PREFIX}hdnNumberOfRows"
PAGE_SIZE_FIELD = f"{FIELD_PREFIX}hdnPageSize"
CURRENT_PAGE_FIELD = f"{FIELD_PREFIX}hdnCurrentPage"
NEXT_PAGE_TARGET = f"{FIELD_PREFIX}lnkNextPage"
SCRIPT_MANAGER_FIELD = "ctl00$ToolkitScriptManager1"


def _int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def page_state(fields: dict[str, str], page: int) -> tuple[int, int]:
    """(current page, total pages) from the hidden paging fields."""
    total_rows = _int(fields.get(ROW_COUNT_FIELD), 0)
    page_size = _int(fields.get(PAGE_SIZE_FIELD), 50)
    current = _int(fields.get(CURRENT_PAGE_FIELD), page)
    total_pages = math.ceil(total_rows / page_size) if page_size > 0 else 1
    return current, total_pages


def next_page_payload(fields: dict[str, str]) -> dict[str, str]:
    payload = dict(fields)
    payload["__EVENTTARGET"] = NEXT_PAGE_TARGET
    payload["__EVENTARGUMENT"] = ""
    payload["__LASTFOCUS"] = ""
    if SCRIPT_MANAGER_FIELD in payload:
        payload[SCRIPT_MANAGER_FIELD] = f"{FIELD_PREFIX}upnlSearchResults|{NEXT_PAGE_TARGET}"
    return payload


def competition_id(href: str | None) -> str | None:
    if not href:
        return None
    values = parse_qs(urlparse(href).query).get("competitionId")
    return clean_text(values[0]) if values else None


class SaskTendersAdapter(SourceAdapter):
    key = "sasktenders"
    display_name = "Saskatchewan Tenders"
    source_url = SEARCH_URL
    timezone = "America/Regina"
    location = "Saskatchewan"

    parameters = (Param("pages", int, 10),)
    page_delay_ms = 300
    headers = {"Origin": "https://sasktenders.ca", "Referer": SEARCH_URL}

    async def fetch_pages(self) -> AsyncIterator[Page]:
        max_pages = max(1, self.params["pages"])
        number = 1
        result = await self.fetch(SEARCH_URL, page=number)

        while True:
            html = result.text
            fields = extract_hidden_fields(html)
            current, total_pages = page_state(fields, number)

            yield Page(rows=self.parse_rows(html), number=number, total_pages=total_pages)

            if current >= total_pages or number >= max_pages:
                break

            await self.pause()
            number += 1
            result = await self.fetch(
                SEARCH_URL,
                page=number,
                method="POST",
                data=next_page_payload(fields),
            )

    def parse_rows(self, html: str) -> list[dict[str, Any]]:
        root = parse_document(html)
        if root is None:
            return []

        rows = []
        for header in root.cssselect("div.HeaderAccordionPlusFormat"):
            tables = header.xpath(
                ".//table[contains(@class,'ContentAccordionFormat') "
                "or contains(@class,'HeadertAlternateAccordionFormat')]"
            )
            if not tables:
                continue
            cells = [node_text(td) or "" for td in tables[0].xpath(".//td")]
            if len(cells) < 7:
                continue

            title, organization, number = cells[1], cells[2], cells[3]
            if not title or not number:
                continue

            comp_id = None
            detail = header.xpath(
                "following-sibling::div[contains(@class,'ContentAccordionFormat_SearchPage')][1]"
            )
            if detail:
                links = detail[0].xpath(".//a[contains(@href,'print.aspx?competitionId=')]")
                if links:
                    comp_id = competition_id(links[0].get("href"))

            rows.append(
                {
                    "competition_id": comp_id,
                    "competition_number": number,
                    "title": title,
                    "organization": organization,
                    "open_date": cells[4],
                    "close_date": cells[5],
                    "status": cells[6],
                }
            )
        return rows

    def normalize(self, row: dict[str, Any]) -> TenderRecord | None:
        title = clean_text(row.get("title"))
        number = clean_text(row.get("competition_number"))
        if not title or not number:
            return None

        comp_id = clean_text(row.get("competition_id"))
        organization = clean_text(row.get("organization"))
        open_at = parse_datetime(row.get("open_date"), self.timezone)

        return self.record(
            first_text(comp_id, number),
            title,
            row,
            source_url=f"{PRINT_URL}?competitionId={comp_id}" if comp_id else SEARCH_URL,
            location=f"{organization}, SK" if organization else self.location,
            published_at=open_at,
            date_publish_at=open_at,
            date_closing_at=parse_datetime(row.get("close_date"), self.timezone),
            solicitation_number=number,
            buyer_name=organization,
            source_status=clean_text(row.get("status")),
            source_timezone=self.timezone,
        )
