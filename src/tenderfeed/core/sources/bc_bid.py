"""
BC Bid: an ASP.NET grid behind a JavaScript browser check.

Plain HTTP only gets through with a session cookie and CSRF token
captured from a real browser session. With those, the grid is paged
through its AJAX update-panel endpoint. Without them, a browser
snapshot provider can be used instead when one is configured.

Responses that show the browser check (or are otherwise blocked) fail
the run with a message naming the likely cause, so an expired session
never looks like an empty portal.
"""

from __future__ import annotations

import math
import re
from typing import Any, AsyncIterator

import orjson

from tenderfeed.core.backends import BackendError, BlockedError, FetchError, SnapshotOptions
from tenderfeed.core.credentials import SessionCredentials, SourceError
from tenderfeed.core.normalize import TenderRecord, absolute_url, clean_text, parse_datetime

from .base import Page, Param, SourceAdapter
from .html import node_text, parse_document

BASE_HOST = "https://bcbid.gov.bc.ca"
PAGE_URL = f"{BASE_HOST}/page.aspx/en/rfp/request_browse_public"
AJAX_URL = (
    f"{BASE_HOST}/ajax.aspx/en/rfp/request_browse_public"
    "?ivControlUIDsAsync=body:x:grid:upgrid&asyncmodulename=rfp&asyncpagename=request_browse_public"
)

GRID_ID = "body_x_grid_grd"
BROWSER_CHECK = "Browser check: BC Bid"
BLOCK_MARKERS = (BROWSER_CHECK, "Access Denied")
DATE_FORMATS = ("%Y-%m-%d %I:%M:%S %p",)

EXPIRED_MESSAGE = (
    "Session credentials are invalid or expired. "
    "Please provide fresh credentials from a browser session."
)

AJAX_HEADERS = {
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.9",
    "IV-Ajax": "AjaxPost=true",
    "IV-AjaxControl": "updatepanel",
    "Origin": BASE_HOST,
    "Referer": PAGE_URL,
    "Sec-Fetch-Dest": "empty",
    "Sec-Fetch-Mode": "cors",
    "Sec-Fetch-Site": "same-origin",
    "X-Requested-With": "XMLHttpRequest",
    "mode": "html",
}

DOCUMENT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": PAGE_URL,
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "same-origin",
    "Upgrade-Insecure-Requests": "1",
}

# Search form fields the grid expects; "val" selects the Open status filter
FILTER_FIELDS = (
    "body_x_txtQuery,body_x_selFamily,body_x_selNtypeCode,body_x_selSrfxCode,"
    "body_x_selBpmIdOrgaLevelOrgaNode,body_x_txtRfpBeginDate,body_x_selPtypeCode,"
    "body_x_selRtgrouCode,body_x_txtRfpEndDate,body_x_selRfpIdAreaLevelAreaNode,body_x_txtRfpRfxId_1"
)

_ROW_IDS = re.compile(r'data-id="(\d+)"')
_ROWS = re.compile(r'<tr[^>]*data-id="\d+"', re.IGNORECASE)
_RECORD_COUNT = re.compile(r"(\d+)\s*Record\(s\)", re.IGNORECASE)
_COUNT_FIELD = re.compile(r"\bcount\s*:\s*(\d+)", re.IGNORECASE)
_PAGE_INDEX = re.compile(r'data-page-index="(\d+)"', re.IGNORECASE)


def _hidden_value(html: str, name: str) -> int | None:
    for pattern in (
        rf'name="{name}"[^>]*value="(\d+)"',
        rf'value="(\d+)"[^>]*name="{name}"',
    ):
        match = re.search(pattern, html, flags=re.IGNORECASE)
        if match:
            return int(match.group(1))
    return None


# =============================================================================
# Form Payloads
# =============================================================================


def base_payload(csrf_token: str) -> dict[str, str]:
    """Form state of the first grid page with the Open filter applied."""
    return {
        "__isSecurePage": "true",
        "hdnUserValue": FILTER_FIELDS,
        "__LASTFOCUS": "",
        "__EVENTTARGET": GRID_ID,
        "__EVENTARGUMENT": "Page|1",
        "HTTP_RESOLUTION": "",
        "REQUEST_METHOD": "GET",
        "header:x:prxHeaderLogInfo:x:ContrastModal:chkContrastTheme_radio": "true",
        "header:x:prxHeaderLogInfo:x:ContrastModal:chkContrastTheme": "True",
        "x_headaction": "",
        "x_headloginName": "",
        "header:x:prxHeaderLogInfo:x:ContrastModal:chkPassiveNotification": "0",
        "proxyActionBar:x:txtWflRefuseMessage": "",
        "hdnMandatory": "0",
        "hdnWflAction": "",
        "body:_ctl0": "",
        "body:x:txtQuery": "",
        "body:x:txtRfpRfxId_1": "",
        "body_x_selSrfxCode_text": "",
        "body:x:selSrfxCode": "val",
        "body_x_selRtgrouCode_text": "",
        "body:x:selRtgrouCode": "",
        "body_x_selNtypeCode_text": "",
        "body:x:selNtypeCode": "",
        "body_x_selRfpIdAreaLevelAreaNode_text": "",
        "body:x:selRfpIdAreaLevelAreaNode": "",
        "body:x:txtRfpBeginDate": "",
        "body:x:txtRfpBeginDatemax": "",
        "body_x_selBpmIdOrgaLevelOrgaNode_text": "",
        "body:x:selBpmIdOrgaLevelOrgaNode": "",
        "body_x_selPtypeCode_text": "",
        "body:x:selPtypeCode": "",
        "body_x_selFamily_text": "",
        "body:x:selFamily": "",
        "body:x:txtRfpEndDate": "",
        "body:x:txtRfpEndDatemax": "",
        "body:x:prxFilterBar:x:hdnResetFilterUrlbody_x_prxFilterBar_x_cmdRazBtn": "",
        f"hdnSortExpression{GRID_ID}": "",
        f"hdnSortDirection{GRID_ID}": "",
        f"hdnCurrentPageIndex{GRID_ID}": "1",
        f"hdnRowCount{GRID_ID}": "151",
        f"maxpageindex{GRID_ID}": "10",
        f"ajaxrowsiscounted{GRID_ID}": "False",
        "CSRFToken": csrf_token,
    }


def page_payload(base: dict[str, str], page: int, row_ids: list[str]) -> dict[str, str]:
    """Postback for page ``page``, echoing the rows of the previous page."""
    payload = dict(base)
    payload["__LASTFOCUS"] = "body_x_grid_gridPagerBtnNextPage"
    payload["__EVENTARGUMENT"] = f"Page|{page}"
    payload[f"hdnCurrentPageIndex{GRID_ID}"] = str(page - 1)
    for row_id in row_ids:
        payload[f"body:x:grid:grd:tr_{row_id}:ctrl_colRfpPlanholdersUsed"] = "False"
    return payload


def count_payload(base: dict[str, str]) -> dict[str, str]:
    payload = dict(base)
    payload["__EVENTARGUMENT"] = "GetCount"
    payload["__EVENTTARGET"] = GRID_ID
    payload[f"ajaxmaxpageindex{GRID_ID}"] = payload.get(f"maxpageindex{GRID_ID}", "0")
    return payload


# =============================================================================
# Response Inspection
# =============================================================================


def unwrap_ajax_body(body: str) -> str:
    """HTML fragment out of an update-panel response.

    The endpoint answers either with markup directly, with a JSON string,
    or with a JSON object one of whose values is the grid markup.
    """
    if "<table" in body or "<div" in body:
        return body

    try:
        decoded = orjson.loads(body)
    except orjson.JSONDecodeError:
        decoded = None

    if isinstance(decoded, str):
        return decoded
    if isinstance(decoded, dict):
        for value in decoded.values():
            if isinstance(value, str) and "<table" in value:
                return value
    if "\\u003c" in body:
        return body.encode("latin-1", "backslashreplace").decode("unicode_escape")
    return body


def row_ids(html: str) -> list[str]:
    return _ROW_IDS.findall(html)


def count_rows(html: str) -> int:
    return len(_ROWS.findall(html))


def total_records(html: str) -> int | None:
    match = _RECORD_COUNT.search(html)
    if match:
        return int(match.group(1))
    return _hidden_value(html, f"hdnRowCount{GRID_ID}")


def page_count(html: str, total: int | None, rows_on_page: int) -> int:
    """Number of grid pages, from the best evidence available."""
    if total is not None and rows_on_page > 0:
        return max(1, math.ceil(total / rows_on_page))

    max_index = _hidden_value(html, f"maxpageindex{GRID_ID}")
    if max_index is None:
        indices = [int(i) for i in _PAGE_INDEX.findall(html)]
        max_index = max(indices) if indices else None
    if max_index is not None:
        return max(1, max_index + 1)

    row_count = _hidden_value(html, f"hdnRowCount{GRID_ID}")
    if row_count is not None and rows_on_page > 0:
        return max(1, math.ceil(row_count / rows_on_page))
    return 1


def is_bootstrap_only(html: str) -> bool:
    """Script bootstrap served instead of the grid."""
    return "scriptToLoad" in html and GRID_ID not in html


def is_empty_response(html: str) -> bool:
    text = html.strip()
    return not text or re.fullmatch(r"<!doctype[^>]*>", text, flags=re.IGNORECASE) is not None


# =============================================================================
# Adapter
# =============================================================================


class BcBidAdapter(SourceAdapter):
    key = "bc-bid"
    display_name = "British Columbia Bid"
    source_url = PAGE_URL
    timezone = "America/Vancouver"
    location = "British Columbia"

    parameters = (
        Param("pages", int, None),
        Param("expected_count", int, None),
        Param("session_id", str, None),
        Param("csrf_token", str, None),
        Param("cookie_header", str, None),
        Param("use_browser", bool, False),
    )
    page_delay_ms = 500
    block_markers = BLOCK_MARKERS

    @property
    def max_pages(self) -> int | None:
        pages = self.params["pages"]
        return max(1, pages) if pages is not None else None

    async def fetch_pages(self) -> AsyncIterator[Page]:
        credentials = self._credentials()
        if credentials is not None:
            self.log.info("Using direct HTTP with supplied session credentials")
            async for page in self._fetch_with_credentials(credentials):
                yield page
        elif self.params["use_browser"] and self.snapshotter is not None:
            self.log.warning("No session credentials; falling back to a browser snapshot")
            async for page in self._fetch_with_browser():
                yield page
        else:
            raise SourceError(
                "No BC Bid credentials available. Provide session_id and csrf_token "
                "(or cookie_header) as parameters or in the source settings.",
                source_key=self.key,
            )

    def _credentials(self) -> SessionCredentials | None:
        session_id = self.params["session_id"]
        csrf_token = self.params["csrf_token"]
        cookie_header = self.params["cookie_header"]
        if not (session_id or csrf_token or cookie_header):
            return None
        try:
            return SessionCredentials.resolve(session_id, csrf_token, cookie_header)
        except SourceError:
            if self.params["use_browser"] and self.snapshotter is not None:
                return None
            raise

    # -------------------------------------------------------------------------
    # Direct HTTP
    # -------------------------------------------------------------------------

    async def _fetch_with_credentials(self, credentials: SessionCredentials) -> AsyncIterator[Page]:
        headers = {**AJAX_HEADERS, "Cookie": credentials.cookie_header}
        base = base_payload(credentials.csrf_token)

        total = self.params["expected_count"]
        if total is None:
            total = await self._ajax_count(headers, base)

        total = await self._check_session(credentials, total)

        html = await self._post_grid(headers, base, 1)
        available = page_count(html, total, count_rows(html))
        limit = min(available, self.max_pages) if self.max_pages else available
        self.log.info(f"Total pages available: {available}")

        yield Page(rows=self.parse_rows(html), number=1, total_pages=available, total_rows=total)

        for number in range(2, limit + 1):
            await self.pause()
            html = await self._post_grid(headers, page_payload(base, number, row_ids(html)), number)
            yield Page(rows=self.parse_rows(html), number=number, total_pages=available, total_rows=total)

    async def _post_grid(self, headers: dict[str, str], payload: dict[str, str], number: int) -> str:
        try:
            result = await self.fetch(AJAX_URL, page=number, method="POST", headers=headers, data=payload)
        except BlockedError as e:
            raise SourceError(EXPIRED_MESSAGE, source_key=self.key) from e

        html = unwrap_ajax_body(result.text)
        if is_empty_response(html):
            raise SourceError(
                f"BC Bid page {number} came back empty; the session was probably rejected. "
                + EXPIRED_MESSAGE,
                source_key=self.key,
            )
        return html

    async def _ajax_count(self, headers: dict[str, str], base: dict[str, str]) -> int | None:
        """Ask the grid for its record count; None when it will not say."""
        try:
            result = await self.fetch(AJAX_URL, method="POST", headers=headers, data=count_payload(base))
        except BackendError as e:
            self.log.debug(f"Record count request failed: {e}")
            return None

        body = result.text.strip()
        if not body:
            return None

        try:
            decoded = orjson.loads(body)
        except orjson.JSONDecodeError:
            decoded = None
        if isinstance(decoded, dict) and "count" in decoded:
            return int(decoded["count"])

        for pattern in (_COUNT_FIELD, _RECORD_COUNT):
            match = pattern.search(body)
            if match:
                return int(match.group(1))
        return None

    async def _check_session(self, credentials: SessionCredentials, total: int | None) -> int | None:
        """Load the listing page itself: proves the session and may carry the total."""
        headers = {**DOCUMENT_HEADERS, "Cookie": credentials.cookie_header}
        try:
            result = await self.fetch(PAGE_URL, headers=headers)
        except BlockedError as e:
            raise SourceError(EXPIRED_MESSAGE, source_key=self.key) from e
        except FetchError as e:
            self.log.debug(f"Listing page unavailable: {e}")
            return total

        return total if total is not None else total_records(result.text)

    # -------------------------------------------------------------------------
    # Browser Fallback
    # -------------------------------------------------------------------------

    async def _fetch_with_browser(self) -> AsyncIterator[Page]:
        options = SnapshotOptions(
            timezone_id=self.timezone,
            ready_selector=f"#{GRID_ID}",
            row_selector=f"#{GRID_ID} tr[data-id]",
        )
        snapshots = await self.snapshotter(PAGE_URL, self.max_pages or 50, options)

        for number, html in enumerate(snapshots, start=1):
            if BROWSER_CHECK in html:
                raise SourceError(
                    "Browser snapshot still hit the browser check. "
                    "Provide session_id and csrf_token from a valid browser session.",
                    source_key=self.key,
                )
            if is_bootstrap_only(html):
                raise SourceError(
                    "Browser snapshot returned a script bootstrap response. "
                    "Provide session_id and csrf_token from a valid browser session.",
                    source_key=self.key,
                )
            yield Page(rows=self.parse_rows(html), number=number, total_pages=len(snapshots))

    # -------------------------------------------------------------------------
    # Rows
    # -------------------------------------------------------------------------

    def parse_rows(self, html: str) -> list[dict[str, Any]]:
        root = parse_document(html)
        if root is None:
            return []

        rows = []
        for tr in root.xpath(f"//table[@id='{GRID_ID}']//tr[@data-id]"):
            cells = tr.xpath("./td")
            if len(cells) < 12:
                continue
            links = cells[1].xpath(".//a[@href]")
            rows.append(
                {
                    "data_id": tr.get("data-id"),
                    "status": node_text(cells[0]),
                    "opportunity_id": node_text(cells[1]),
                    "href": links[0].get("href") if links else None,
                    "title": node_text(cells[2]),
                    "commodities": node_text(cells[3]),
                    "type": node_text(cells[4]),
                    "issue_date": node_text(cells[5]),
                    "close_date": node_text(cells[6]),
                    "last_updated": node_text(cells[9]),
                    "issued_by": node_text(cells[10]),
                    "issued_for": node_text(cells[11]),
                }
            )
        return rows

    def normalize(self, row: dict[str, Any]) -> TenderRecord | None:
        external_id = clean_text(row.get("data_id"))
        title = clean_text(row.get("title"))
        if not external_id or not title:
            return None

        issued_by = clean_text(row.get("issued_by"))
        issued_for = clean_text(row.get("issued_for"))
        issue_at = parse_datetime(row.get("issue_date"), self.timezone, DATE_FORMATS)
        href = clean_text(row.get("href"))

        return self.record(
            external_id,
            title,
            row,
            description=clean_text(row.get("commodities")),
            source_url=absolute_url(BASE_HOST, href) if href else PAGE_URL,
            location=issued_for or issued_by or self.location,
            published_at=issue_at,
            date_publish_at=issue_at,
            date_issue_at=issue_at,
            date_closing_at=parse_datetime(row.get("close_date"), self.timezone, DATE_FORMATS),
            solicitation_number=clean_text(row.get("opportunity_id")),
            solicitation_type=clean_text(row.get("type")),
            purchasing_group=issued_by,
            buyer_name=issued_by,
            source_status=clean_text(row.get("status")),
            source_timezone=self.timezone,
        )
