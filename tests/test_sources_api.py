"""Tests for the JSON API adapters and the adapter base class."""

from __future__ import annotations

from datetime import datetime

import httpx
import pytest

from stubs import Portal, form_data, html_response, json_body, json_response, run_adapter, stored
from tenderfeed.core.backends import ProtocolError
from tenderfeed.core.credentials import SourceError
from tenderfeed.core.sources import ADAPTERS, REGISTRY, SOURCE_ORDER, get_adapter_class
from tenderfeed.core.sources.alberta import AlbertaPurchasingAdapter
from tenderfeed.core.sources.barrie import BarrieTendersAdapter
from tenderfeed.core.sources.bc_bid import BcBidAdapter
from tenderfeed.core.sources.infrastructure_ontario import InfrastructureOntarioAdapter
from tenderfeed.core.sources.merx import MerxOttawaAdapter
from tenderfeed.core.sources.nova_scotia import NovaScotiaAdapter
from tenderfeed.core.sources.ontario_highways import OntarioHighwayProgramsAdapter
from tenderfeed.core.sources.pei import PeiTendersAdapter
from tenderfeed.core.sources.toronto import PORTAL_URL, TorontoBidsAdapter


# -----------------------------------------------------------------------------
# Registry and parameters
# -----------------------------------------------------------------------------


class TestRegistry:
    def test_twelve_unique_sources(self) -> None:
        assert len(ADAPTERS) == 12
        assert len(REGISTRY) == 12
        assert SOURCE_ORDER[0] == "barrie-bids-tenders"
        assert SOURCE_ORDER[-2:] == ("bc-bid", "ontario-highway-programs")

    def test_unknown_source(self) -> None:
        with pytest.raises(SourceError, match="Unknown source"):
            get_adapter_class("atlantis-tenders")

    def test_every_adapter_declares_identity(self) -> None:
        for adapter in ADAPTERS:
            assert adapter.display_name
            assert adapter.source_url.startswith("https://")


class TestParams:
    def test_coercion_and_unknown_keys(self) -> None:
        assert MerxOttawaAdapter.coerce_params({"max_pages": "3", "bogus": "x"}) == {"max_pages": 3}

    def test_defaults(self) -> None:
        assert AlbertaPurchasingAdapter.coerce_params({}) == {"limit": 50, "pages": 10}
        assert AlbertaPurchasingAdapter.coerce_params({"limit": ""}) == {"limit": 50, "pages": 10}

    def test_bad_integer(self) -> None:
        with pytest.raises(SourceError, match="expects an integer"):
            AlbertaPurchasingAdapter.coerce_params({"limit": "twenty"})

    def test_booleans(self) -> None:
        assert BcBidAdapter.coerce_params({"use_browser": "yes"})["use_browser"] is True
        assert BcBidAdapter.coerce_params({"use_browser": "off"})["use_browser"] is False
        assert BcBidAdapter.coerce_params({})["use_browser"] is False
        with pytest.raises(SourceError, match="expects a boolean"):
            BcBidAdapter.coerce_params({"use_browser": "maybe"})


# -----------------------------------------------------------------------------
# Alberta Purchasing Connection
# -----------------------------------------------------------------------------


def alberta_row(n: int, **fields) -> dict:
    row = {
        "id": f"AB-{n}",
        "title": f"Opportunity {n}",
        "statusCode": "OPEN",
        "postDateTime": "2026-01-05T09:00:00",
        "closeDateTime": "2099-02-05T14:00:00",
        "solicitationNumber": f"AB-2026-{n:04d}",
        "contractingOrganization": "Alberta Transportation",
        "regionOfDelivery": ["Edmonton", "Calgary"],
    }
    row.update(fields)
    return row


class TestAlberta:
    def test_page_limit_and_total_bound_paging(self, database) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            offset = json_body(request)["offset"]
            rows = [alberta_row(offset + i) for i in range(20)]
            return json_response({"totalCount": 40, "values": rows})

        portal = Portal(handler)
        result = run_adapter(AlbertaPurchasingAdapter, portal, {"limit": "20", "pages": "3"})

        assert len(portal.requests) == 2
        assert [json_body(r)["offset"] for r in portal.requests] == [1, 21]
        assert all(r.method == "POST" for r in portal.requests)
        assert result.items_found == 40
        assert result.items_upserted == 40
        assert result.pages_fetched == 2

        record = stored("alberta-purchasing")["AB-1"]
        assert record.location == "Edmonton, Calgary"
        assert record.buyer_name == "Alberta Transportation"
        # Mountain Standard Time in January
        assert record.date_publish_at == datetime(2026, 1, 5, 16, 0)
        assert record.source_url == "https://purchasing.alberta.ca/opportunity/AB-1"

    def test_invalid_rows_are_counted_not_fatal(self, database) -> None:
        rows = [alberta_row(1), {"title": "no id"}, alberta_row(2, statusCode="CLOSED")]
        portal = Portal(lambda request: json_response({"totalCount": 3, "values": rows}))

        result = run_adapter(AlbertaPurchasingAdapter, portal)

        assert result.items_found == 3
        assert result.items_invalid == 1
        assert result.items_skipped == 1
        assert result.items_upserted == 1
        assert set(stored("alberta-purchasing")) == {"AB-1"}

    def test_unparseable_date_keeps_the_record(self, database) -> None:
        row = alberta_row(1, closeDateTime="garbage-date")
        portal = Portal(lambda request: json_response({"totalCount": 1, "values": [row]}))

        result = run_adapter(AlbertaPurchasingAdapter, portal)

        assert result.items_upserted == 1
        record = stored("alberta-purchasing")["AB-1"]
        assert record.date_closing_at is None
        assert record.title == "Opportunity 1"
        assert record.solicitation_number == "AB-2026-0001"
        assert record.buyer_name == "Alberta Transportation"
        assert record.date_publish_at == datetime(2026, 1, 5, 16, 0)

    def test_rerun_is_idempotent(self, database) -> None:
        portal = Portal(lambda request: json_response({"totalCount": 1, "values": [alberta_row(1)]}))

        first = run_adapter(AlbertaPurchasingAdapter, portal)
        second = run_adapter(AlbertaPurchasingAdapter, portal)

        assert first.items_upserted == 1
        assert second.items_found == 1
        assert second.items_upserted == 0
        assert len(stored("alberta-purchasing")) == 1


# -----------------------------------------------------------------------------
# Toronto Bids Portal
# -----------------------------------------------------------------------------


def toronto_row(n: int) -> dict:
    return {
        "id": f"TOR-{n}",
        "Posting_Title": f"Solicitation {n}",
        "Status": "Open",
        "Solicitation_Document_Number": f"Doc{n}",
        "Closing_Date": "2099-01-15T12:00:00",
        "Ariba_Discovery_Posting_Link": "Link has not been posted yet",
        "Client_Division": "Transit; Water",
        "Wards": "Ward 1, Ward 2",
        "High_Level_Category": "Construction Services",
    }


class TestToronto:
    def test_skip_top_paging(self, database) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            skip = int(request.url.params["$skip"])
            rows = [toronto_row(i) for i in range(skip, min(skip + 2, 3))]
            return json_response({"@odata.count": 3, "value": rows})

        portal = Portal(handler)
        result = run_adapter(TorontoBidsAdapter, portal, {"limit": "2"})

        assert [r.url.params["$skip"] for r in portal.requests] == ["0", "2"]
        assert portal.requests[0].url.params["$top"] == "2"
        assert result.items_upserted == 3

        record = stored("toronto-bids-portal")["TOR-0"]
        assert record.ariba_discovery_url is None
        assert record.source_url == PORTAL_URL
        assert record.client_divisions == ["Transit", "Water"]
        assert record.wards == ["Ward 1", "Ward 2"]
        assert record.source_scope == "Construction Services"
        assert record.date_closing_at == datetime(2099, 1, 15, 17, 0)

    def test_empty_feed_stops(self, database) -> None:
        portal = Portal(lambda request: json_response({"@odata.count": 0, "value": []}))
        result = run_adapter(TorontoBidsAdapter, portal)

        assert len(portal.requests) == 1
        assert result.items_found == 0
        assert result.warning is None

    def test_empty_page_stops_despite_reported_count(self, database) -> None:
        portal = Portal(lambda request: json_response({"@odata.count": 1000, "value": []}))
        result = run_adapter(TorontoBidsAdapter, portal)

        assert len(portal.requests) == 1
        assert result.items_found == 0

    def test_page_cap_without_count(self, database) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            skip = int(request.url.params["$skip"])
            return json_response({"value": [toronto_row(skip), toronto_row(skip + 1)]})

        portal = Portal(handler)
        result = run_adapter(TorontoBidsAdapter, portal, {"limit": "2", "pages": "3"})

        assert [r.url.params["$skip"] for r in portal.requests] == ["0", "2", "4"]
        assert result.items_upserted == 6

    def test_array_body_is_a_protocol_error(self, database) -> None:
        portal = Portal(lambda request: json_response([1, 2, 3]))
        with pytest.raises(ProtocolError):
            run_adapter(TorontoBidsAdapter, portal)


# -----------------------------------------------------------------------------
# Nova Scotia
# -----------------------------------------------------------------------------


class TestNovaScotia:
    def test_firewall_rejection_is_a_warning(self, database) -> None:
        portal = Portal(lambda request: html_response("<html><body>Request Rejected</body></html>"))
        result = run_adapter(NovaScotiaAdapter, portal)

        assert len(portal.requests) == 1
        assert result.items_found == 0
        assert result.warning == "No items found - API may be protected by WAF"

    def test_tenders(self, database) -> None:
        payload = {
            "paginationData": {"totalRecords": 1},
            "tenderDataList": [
                {
                    "id": "ns-77",
                    "title": "Ferry terminal dredging",
                    "tenderId": "NS-2026-77",
                    "tenderStatus": "OPEN",
                    "procurementEntity": "Department of Public Works",
                    "postDate": "2026-01-05T15:00:00Z",
                    "closingDate": "2099-01-20T18:00:00Z",
                }
            ],
        }
        portal = Portal(lambda request: json_response(payload))
        result = run_adapter(NovaScotiaAdapter, portal)

        request = portal.requests[0]
        assert request.method == "POST"
        assert request.headers["Authorization"].startswith("Bearer ")
        assert request.url.params["page"] == "1"
        assert result.items_upserted == 1
        assert result.warning is None

        record = stored("nova-scotia-procurement")["ns-77"]
        assert record.location == "Department of Public Works, Nova Scotia"
        assert record.date_publish_at == datetime(2026, 1, 5, 15, 0)


# -----------------------------------------------------------------------------
# Infrastructure Ontario
# -----------------------------------------------------------------------------


class TestInfrastructureOntario:
    def test_pages_and_path_identifiers(self, database) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["cpage"])
            tiles = [
                {
                    "tileTitle": f"Hospital {page}",
                    "tileUrl": f"/en/what-we-do/projectssearch/hospital-{page}/",
                    "tileShortDesc": "New build",
                }
            ]
            return json_response(
                {
                    "totalCount": 2,
                    "paginationViewModel": {"pageSize": 1, "totalNumPage": 2},
                    "searchResults": {"rowViewModels": tiles},
                }
            )

        portal = Portal(handler)
        result = run_adapter(InfrastructureOntarioAdapter, portal)

        assert len(portal.requests) == 2
        assert portal.requests[0].url.params["facets"] == "projectstage:inprocurement"
        assert result.items_upserted == 2

        record = stored("infrastructure-ontario-projects")["en/what-we-do/projectssearch/hospital-1"]
        assert record.source_url == "https://www.infrastructureontario.ca/en/what-we-do/projectssearch/hospital-1/"
        assert record.source_scope == "Project Stage: In Procurement"


# -----------------------------------------------------------------------------
# Prince Edward Island
# -----------------------------------------------------------------------------


def pei_payload() -> dict:
    def cell(text: str) -> dict:
        return {"type": "TableV2Cell", "data": {"text": text}}

    row = {
        "type": "TableV2Row",
        "children": [
            {
                "type": "TableV2Cell",
                "children": [
                    {"type": "LinkV2", "data": {"text": "PEI-2026-001", "queryParams": {"tender_id": "9876"}}}
                ],
            },
            cell("Bridge deck repairs"),
            cell("Transportation and Infrastructure"),
            cell("2026-01-05"),
            cell("2099-02-01"),
        ],
    }
    header = {"type": "TableV2Row", "children": [cell("Number"), cell("Title")]}
    return {"data": [{"type": "Page", "children": [{"type": "TableV2", "children": [header, row]}]}]}


class TestPei:
    def test_workflow_table(self, database) -> None:
        portal = Portal(lambda request: json_response(pei_payload()))
        result = run_adapter(PeiTendersAdapter, portal, {"years": "2"})

        assert len(portal.requests) == 2
        years = [int(json_body(r)["queryVars"]["publication_year"]) for r in portal.requests]
        assert years[0] - years[1] == 1
        assert json_body(portal.requests[0])["queryVars"]["status"] == "Open"
        # Same tender seen in both years
        assert result.items_found == 2
        assert result.items_upserted == 1

        record = stored("pei-tenders")["9876"]
        assert record.solicitation_number == "PEI-2026-001"
        assert record.buyer_name == "Transportation and Infrastructure"
        assert record.source_url.endswith("TenderView?tender_id=9876")


# -----------------------------------------------------------------------------
# Barrie
# -----------------------------------------------------------------------------

BARRIE_MODULE = """
<html><body><form>
<input name="__RequestVerificationToken" type="hidden" value="tok-123" />
</form></body></html>
"""


class TestBarrie:
    def test_token_then_form_paging(self, database) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return html_response(BARRIE_MODULE)
            return json_response(
                {
                    "total": 1,
                    "data": [
                        {
                            "Id": "b-1",
                            "Title": "Waterfront trail lighting",
                            "Status": "Open",
                            "Scope": "Construction",
                            "DateAvailable": "2026-01-05T10:00:00-05:00",
                            "DateClosing": "2099-01-20T14:00:00-05:00",
                            "TimeZoneLabel": "Eastern Standard Time",
                        }
                    ],
                }
            )

        portal = Portal(handler)
        result = run_adapter(BarrieTendersAdapter, portal)

        assert [r.method for r in portal.requests] == ["GET", "POST"]
        search = portal.requests[1]
        assert search.headers["RequestVerificationToken"] == "tok-123"
        assert b"__RequestVerificationToken=tok-123" in search.content
        assert b"status=Open" in search.content
        assert result.items_upserted == 1

        record = stored("barrie-bids-tenders")["b-1"]
        assert record.date_available_at == datetime(2026, 1, 5, 15, 0)
        assert record.published_at == record.date_available_at
        assert record.source_timezone == "Eastern Standard Time"

    def test_empty_page_stops_despite_reported_total(self, database) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return html_response(BARRIE_MODULE)
            return json_response({"total": 500, "data": []})

        portal = Portal(handler)
        result = run_adapter(BarrieTendersAdapter, portal)

        assert [r.method for r in portal.requests] == ["GET", "POST"]
        assert result.items_found == 0

    def test_page_cap(self, database) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return html_response(BARRIE_MODULE)
            start = int(form_data(request)["start"])
            rows = [
                {"Id": f"b-{n}", "Title": f"Tender {n}", "Status": "Open"}
                for n in range(start, start + 5)
            ]
            return json_response({"total": 500, "data": rows})

        portal = Portal(handler)
        result = run_adapter(BarrieTendersAdapter, portal, {"limit": "5", "pages": "2"})

        posts = [r for r in portal.requests if r.method == "POST"]
        assert [form_data(r)["start"] for r in posts] == ["0", "5"]
        assert result.items_upserted == 10

    def test_non_json_search_response(self, database) -> None:
        portal = Portal(lambda request: html_response(BARRIE_MODULE))
        with pytest.raises(ProtocolError, match="non-JSON"):
            run_adapter(BarrieTendersAdapter, portal)


# -----------------------------------------------------------------------------
# Ontario Highway Programs
# -----------------------------------------------------------------------------


def highway_feature(object_id: int, status: str, contract: str | None) -> dict:
    return {
        "attributes": {
            "OBJECTID": object_id,
            "PROGRAM_TYPE": "Rehabilitation",
            "REGION_NAME": "Northeastern",
            "WP_HIGHWAYS": "11",
            "GWP_SHORT_DESCRIPTION": f"Bridge {object_id} near North Bay",
            "HP_TYPE_OF_WORK": "Bridge replacement",
            "HIGHWAY_PROGRAM_STATUS": status,
            "CONTRACT_NUMBER": contract,
        }
    }


class TestOntarioHighways:
    def test_layer_paging_and_deny_list(self, database) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if not request.url.path.endswith("/query"):
                return json_response(
                    {
                        "objectIdField": "OBJECTID",
                        "maxRecordCount": 2,
                        "editingInfo": {"dataLastEditDate": 1767225600000},
                    }
                )
            if request.url.params["resultOffset"] == "0":
                return json_response(
                    {
                        "features": [
                            highway_feature(1, "Planned", "2026-5001"),
                            highway_feature(2, "Completed", "2024-1111"),
                        ],
                        "exceededTransferLimit": True,
                    }
                )
            return json_response({"features": [highway_feature(3, "Under Construction", None)]})

        portal = Portal(handler)
        result = run_adapter(OntarioHighwayProgramsAdapter, portal)

        queries = [r for r in portal.requests if r.url.path.endswith("/query")]
        assert [r.url.params["resultOffset"] for r in queries] == ["0", "2"]
        assert queries[0].url.params["resultRecordCount"] == "2"
        assert queries[0].url.params["orderByFields"] == "OBJECTID ASC"
        assert result.items_found == 3
        assert result.items_upserted == 2
        assert result.items_skipped == 1

        records = stored("ontario-highway-programs")
        assert "2024-1111" not in records
        planned = records["2026-5001"]
        assert planned.title == "Highway 11 - Bridge 1 near North Bay"
        assert planned.description == "Type of work: Bridge replacement | Status: Planned"
        assert planned.published_at == datetime(2026, 1, 1)
        assert planned.source_raw["data_last_updated"] == "2026-01-01"

        hashed = [key for key in records if key != "2026-5001"]
        assert len(hashed) == 1 and len(hashed[0]) == 32
