"""
Ontario Highway Programs: an ArcGIS feature layer.

The layer metadata gives the object-id field to order by, the server's
page-size ceiling and the last edit time. Features are paged by offset
for as long as the service reports ``exceededTransferLimit``.

This is a programme list rather than a tender board, so new records are
gated by a deny-list: anything not completed, cancelled or closed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, AsyncIterator

from tenderfeed.core.normalize import CreationPolicy, TenderRecord, clean_text, stable_external_id

from .base import Page, SourceAdapter

SOURCE_URL = "https://www.ontario.ca/page/ontarios-highway-programs"
LAYER_URL = (
    "https://services.arcgis.com/6iGx1Dq91oKtcE7x/arcgis/rest/services/"
    "OHP_Buff_FilterHelper_June2025/FeatureServer/40"
)
MAX_PAGE_SIZE = 2000

# Fields hashed into an id for features without a contract number
ID_FIELDS = (
    "PROGRAM_TYPE",
    "PROJECT_START_YEAR",
    "REGION_NAME",
    "WP_HIGHWAYS",
    "GWP_SHORT_DESCRIPTION",
    "HP_TYPE_OF_WORK",
    "HIGHWAY_PROGRAM_STATUS",
    "PROJECT_COMPLETION_YEAR",
    "CONTRACT_NUMBER",
)


def last_edit(layer: dict[str, Any]) -> datetime | None:
    """Layer's last data edit, from epoch milliseconds."""
    stamp = (layer.get("editingInfo") or {}).get("dataLastEditDate")
    if not stamp:
        return None
    try:
        return datetime.fromtimestamp(int(stamp) / 1000.0, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _text(row: dict[str, Any], name: str) -> str | None:
    return clean_text(row.get(name))


class OntarioHighwayProgramsAdapter(SourceAdapter):
    key = "ontario-highway-programs"
    display_name = "Ontario Highway Programs"
    source_url = SOURCE_URL
    timezone = "America/Toronto"
    location = "Ontario"

    creation_policy = CreationPolicy.deny_list()
    headers = {"Accept": "application/json, text/plain, */*"}

    # Set from the layer metadata before features are fetched
    last_updated: datetime | None = None

    async def fetch_pages(self) -> AsyncIterator[Page]:
        layer = await self.fetch_json_object(LAYER_URL, params={"f": "json"})
        object_id_field = layer.get("objectIdField") or layer.get("objectIdFieldName") or "OBJECTID"
        page_size = max(1, min(int(layer.get("maxRecordCount") or 1000), MAX_PAGE_SIZE))
        self.last_updated = last_edit(layer)

        offset = 0
        number = 1
        while True:
            payload = await self.fetch_json_object(
                f"{LAYER_URL}/query",
                page=number,
                headers={"Referer": SOURCE_URL},
                params={
                    "f": "json",
                    "where": "1=1",
                    "outFields": "*",
                    "orderByFields": f"{object_id_field} ASC",
                    "resultOffset": offset,
                    "resultRecordCount": page_size,
                    "returnGeometry": "false",
                    "resultType": "standard",
                },
            )
            features = payload.get("features") or []
            if not features:
                break

            rows = [f["attributes"] for f in features if f.get("attributes")]
            yield Page(rows=rows, number=number)

            offset += len(features)
            if not payload.get("exceededTransferLimit"):
                break
            number += 1
            await self.pause()

    def normalize(self, row: dict[str, Any]) -> TenderRecord | None:
        program_type = _text(row, "PROGRAM_TYPE")
        region = _text(row, "REGION_NAME")
        highway = _text(row, "WP_HIGHWAYS")
        place = _text(row, "GWP_SHORT_DESCRIPTION")
        contract = _text(row, "CONTRACT_NUMBER")
        status = _text(row, "HIGHWAY_PROGRAM_STATUS")

        if not place and not highway and not contract:
            return None

        title_parts = [f"Highway {highway}" if highway else None, place]
        title = " - ".join(p for p in title_parts if p) or program_type

        details = [
            ("Type of work", _text(row, "HP_TYPE_OF_WORK")),
            ("Status", status),
            ("Engineering", _text(row, "ENGINEERING_STATUS")),
            ("Delivery", _text(row, "DELIVERY_METHOD")),
            ("Estimated cost", _text(row, "ESTIMATED_COST_RANGE")),
        ]
        description = " | ".join(f"{label}: {value}" for label, value in details if value)

        updated = self.last_updated
        raw = dict(row)
        raw["data_last_updated"] = updated.date().isoformat() if updated else None

        return self.record(
            stable_external_id(contract, fallback_parts=tuple(row.get(name) for name in ID_FIELDS)),
            title or "Ontario Highway Program Project",
            raw,
            description=description or None,
            source_url=SOURCE_URL,
            location=place or region or self.location,
            published_at=updated,
            date_publish_at=updated,
            source_status=status,
            source_scope=program_type,
        )
