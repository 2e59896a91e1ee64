"""Tests for the BC Bid adapter: credential paging, expiry detection and the browser fallback."""

from __future__ import annotations

import asyncio
from datetime import datetime

import httpx
import orjson
import pytest

from stubs import Portal, form_data, html_response, run_adapter, stored
from tenderfeed.core.credentials import SourceError
from tenderfeed.core.sources.bc_bid import (
    GRID_ID,
    PAGE_URL,
    BcBidAdapter,
    base_payload,
    is_bootstrap_only,
    is_empty_response,
    page_count,
    page_payload,
    total_records,
    unwrap_ajax_body,
)

CREDENTIALS = {"session_id": "sess-1", "csrf_token": "tok-1"}

CHALLENGE = "<html><head><title>Browser check: BC Bid</title></head><body>Checking...</body></html>"


def grid_row(data_id: str, status: str = "Open") -> str:
    cells = [
        status,
        f'<a href="/page.aspx/en/bpm/process_manage_extranet/{data_id}">BC-{data_id}</a>',
        f"Highway maintenance {data_id}",
        "Construction",
        "Invitation to Tender",
        "2026-02-10 02:30:00 PM",
        "2099-03-10 02:00:00 PM",
        "",
        "",
        "2026-02-11 09:00:00 AM",
        "Ministry of Transportation",
        "Kamloops",
    ]
    tds = "".join(f"<td>{c}</td>" for c in cells)
    return f'<tr data-id="{data_id}">{tds}</tr>'


def grid(*ids: str, total: int | None = None) -> str:
    rows = "".join(grid_row(i) for i in ids)
    footer = f"<div>{total} Record(s)</div>" if total is not None else ""
    return f'<div><table id="{GRID_ID}"><tbody>{rows}</tbody></table>{footer}</div>'


# -----------------------------------------------------------------------------
# Response helpers
# -----------------------------------------------------------------------------


class TestResponseHelpers:
    def test_unwrap_markup(self) -> None:
        html = grid("1")
        assert unwrap_ajax_body(html) == html

    def test_unwrap_json_object(self) -> None:
        html = grid("1")
        # The endpoint escapes markup inside its JSON envelope
        body = orjson.dumps({"upgrid": html, "other": 1}).decode().replace("<", "\\u003c")
        assert "<table" not in body
        assert unwrap_ajax_body(body) == html

    def test_total_and_page_count(self) -> None:
        html = grid("1", "2", total=5)
        assert total_records(html) == 5
        assert page_count(html, 5, 2) == 3

    def test_page_count_from_pager(self) -> None:
        html = '<input name="maxpageindexbody_x_grid_grd" value="3" />'
        assert page_count(html, None, 0) == 4
        assert page_count("<div></div>", None, 0) == 1

    def test_empty_and_bootstrap(self) -> None:
        assert is_empty_response("  <!DOCTYPE html>  ")
        assert is_empty_response("")
        assert not is_empty_response(grid("1"))
        assert is_bootstrap_only("<script>var scriptToLoad = 'x';</script>")

    def test_page_payload_echoes_previous_rows(self) -> None:
        payload = page_payload(base_payload("tok"), 3, ["11", "12"])
        assert payload["__EVENTARGUMENT"] == "Page|3"
        assert payload[f"hdnCurrentPageIndex{GRID_ID}"] == "2"
        assert payload["body:x:grid:grd:tr_11:ctrl_colRfpPlanholdersUsed"] == "False"
        assert payload["CSRFToken"] == "tok"


# -----------------------------------------------------------------------------
# Direct HTTP with credentials
# -----------------------------------------------------------------------------


class TestBcBidHttp:
    def test_grid_paging(self, database) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return html_response("<html><body>BC Bid listing</body></html>")
            form = form_data(request)
            if form["__EVENTARGUMENT"] == "GetCount":
                return httpx.Response(200, text='{"count": 3}')
            if form["__EVENTARGUMENT"] == "Page|1":
                return html_response(grid("101", "102"))
            return html_response(grid("103"))

        portal = Portal(handler)
        result = run_adapter(BcBidAdapter, portal, CREDENTIALS)

        posts = [r for r in portal.requests if r.method == "POST"]
        assert all(r.url.path == "/ajax.aspx/en/rfp/request_browse_public" for r in posts)
        assert [form_data(r)["__EVENTARGUMENT"] for r in posts] == ["GetCount", "Page|1", "Page|2"]
        assert posts[0].headers["Cookie"] == "ASP.NET_SessionId=sess-1; CSRFToken=tok-1"
        assert form_data(posts[2])["body:x:grid:grd:tr_102:ctrl_colRfpPlanholdersUsed"] == "False"
        assert [r.url.path for r in portal.requests if r.method == "GET"] == ["/page.aspx/en/rfp/request_browse_public"]

        assert result.items_found == 3
        assert result.items_upserted == 3

        record = stored("bc-bid")["101"]
        assert record.solicitation_number == "BC-101"
        assert record.location == "Kamloops"
        assert record.buyer_name == "Ministry of Transportation"
        assert record.description == "Construction"
        assert record.source_url == "https://bcbid.gov.bc.ca/page.aspx/en/bpm/process_manage_extranet/101"
        # Pacific Standard Time in February
        assert record.date_issue_at == datetime(2026, 2, 10, 22, 30)

    def test_page_limit(self, database) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return html_response("<html></html>")
            return html_response(grid("1", "2"))

        portal = Portal(handler)
        run_adapter(BcBidAdapter, portal, {**CREDENTIALS, "pages": "2", "expected_count": "100"})

        grid_posts = [r for r in portal.requests if r.method == "POST"]
        # expected_count skips the count request
        assert [form_data(r)["__EVENTARGUMENT"] for r in grid_posts] == ["Page|1", "Page|2"]

    def test_challenge_means_expired_session(self, database) -> None:
        portal = Portal(lambda request: html_response(CHALLENGE))

        with pytest.raises(SourceError, match="invalid or expired"):
            run_adapter(BcBidAdapter, portal, CREDENTIALS)
        assert stored("bc-bid") == {}

    def test_blocked_grid_post(self, database) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return html_response("<html></html>")
            return httpx.Response(403)

        with pytest.raises(SourceError, match="invalid or expired"):
            run_adapter(BcBidAdapter, Portal(handler), CREDENTIALS)

    def test_empty_grid_response(self, database) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return html_response("<html></html>")
            return html_response("<!DOCTYPE html>")

        with pytest.raises(SourceError, match="came back empty"):
            run_adapter(BcBidAdapter, Portal(handler), CREDENTIALS)

    def test_missing_credentials(self, database) -> None:
        portal = Portal(lambda request: html_response(""))

        with pytest.raises(SourceError, match="No BC Bid credentials"):
            run_adapter(BcBidAdapter, portal)
        assert portal.requests == []

    def test_half_credentials(self, database) -> None:
        with pytest.raises(SourceError, match="CSRFToken"):
            run_adapter(BcBidAdapter, Portal(lambda request: html_response("")), {"session_id": "s"})


# -----------------------------------------------------------------------------
# Browser fallback
# -----------------------------------------------------------------------------


class FakeSnapshotter:
    def __init__(self, pages: list[str]):
        self.pages = pages
        self.calls: list[tuple] = []

    async def __call__(self, url, max_pages, options):
        self.calls.append((url, max_pages, options))
        await asyncio.sleep(0)
        return self.pages[:max_pages]


class TestBcBidBrowser:
    def test_snapshot_pages(self, database) -> None:
        snapshotter = FakeSnapshotter([grid("201", "202"), grid("203")])
        portal = Portal(lambda request: html_response(""))

        result = run_adapter(BcBidAdapter, portal, {"use_browser": "true"}, snapshotter=snapshotter)

        assert portal.requests == []
        url, max_pages, options = snapshotter.calls[0]
        assert url == PAGE_URL
        assert max_pages == 50
        assert options.timezone_id == "America/Vancouver"
        assert options.row_selector == f"#{GRID_ID} tr[data-id]"
        assert result.items_upserted == 3
        assert result.pages_fetched == 2

    def test_snapshot_still_challenged(self, database) -> None:
        snapshotter = FakeSnapshotter([CHALLENGE])

        with pytest.raises(SourceError, match="browser check"):
            run_adapter(
                BcBidAdapter,
                Portal(lambda request: html_response("")),
                {"use_browser": "true", "pages": "1"},
                snapshotter=snapshotter,
            )

    def test_bootstrap_snapshot(self, database) -> None:
        snapshotter = FakeSnapshotter(["<script>var scriptToLoad = '/x.js';</script>"])

        with pytest.raises(SourceError, match="script bootstrap"):
            run_adapter(
                BcBidAdapter,
                Portal(lambda request: html_response("")),
                {"use_browser": "1"},
                snapshotter=snapshotter,
            )

    def test_browser_disabled_without_credentials(self, database) -> None:
        snapshotter = FakeSnapshotter([grid("1")])

        with pytest.raises(SourceError, match="No BC Bid credentials"):
            run_adapter(BcBidAdapter, Portal(lambda request: html_response("")), snapshotter=snapshotter)
        assert snapshotter.calls == []
