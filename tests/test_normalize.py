"""Tests for date parsing, identifiers and the status policy."""

from __future__ import annotations

import hashlib
from datetime import date, datetime, timedelta, timezone

import pytest

from tenderfeed.core.normalize import (
    CreationPolicy,
    TenderRecord,
    absolute_url,
    clean_text,
    computed_status,
    content_hash,
    favicon_url,
    first_text,
    parse_date,
    parse_datetime,
    path_identifier,
    stable_external_id,
    text_list,
    to_naive_utc,
)

UTC = timezone.utc


# -----------------------------------------------------------------------------
# Dates
# -----------------------------------------------------------------------------


class TestParseDate:
    def test_empty_values(self) -> None:
        assert parse_datetime(None) is None
        assert parse_datetime("") is None
        assert parse_datetime("   ") is None

    @pytest.mark.parametrize("text", ["TBD", "not a date", "31/31/2026", "Closing soon"])
    def test_unparseable_text_is_none(self, text: str) -> None:
        assert parse_datetime(text, "America/Toronto") is None
        assert parse_date(text).value is None

    def test_epoch_milliseconds(self) -> None:
        assert parse_datetime(1700000000000) == datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)

    def test_ms_date_marker(self) -> None:
        parsed = parse_date("/Date(1700000000000)/")
        assert parsed.value == datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)
        assert parsed.format_detected == "ms_marker"

    def test_iso_with_offset_ignores_source_zone(self) -> None:
        value = parse_datetime("2026-03-01T12:00:00Z", "America/Vancouver")
        assert value == datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def test_naive_iso_read_in_source_zone(self) -> None:
        # Regina has no daylight time: always UTC-6
        value = parse_datetime("2026-07-01T10:00:00", "America/Regina")
        assert value == datetime(2026, 7, 1, 16, 0, tzinfo=UTC)

    def test_explicit_format_with_zone_abbreviation(self) -> None:
        value = parse_datetime("Jan 05, 2026 02:00 PM EST", "America/Toronto", ("%b %d, %Y %I:%M %p",))
        assert value == datetime(2026, 1, 5, 19, 0, tzinfo=UTC)

    def test_abbreviation_overrides_source_zone(self) -> None:
        value = parse_datetime("Jan 05, 2026 02:00 PM PST", "America/Toronto", ("%b %d, %Y %I:%M %p",))
        assert value == datetime(2026, 1, 5, 22, 0, tzinfo=UTC)

    def test_explicit_format_without_abbreviation(self) -> None:
        value = parse_datetime("2026-02-10 02:30:00 PM", "America/Vancouver", ("%Y-%m-%d %I:%M:%S %p",))
        assert value == datetime(2026, 2, 10, 22, 30, tzinfo=UTC)

    def test_date_object_is_local_midnight(self) -> None:
        value = parse_datetime(date(2026, 1, 15), "America/Halifax")
        assert value == datetime(2026, 1, 15, 4, 0, tzinfo=UTC)

    def test_unknown_zone_falls_back_to_utc(self) -> None:
        value = parse_datetime("2026-01-15T08:00:00", "Mars/Olympus")
        assert value == datetime(2026, 1, 15, 8, 0, tzinfo=UTC)

    def test_to_naive_utc(self) -> None:
        aware = datetime(2026, 1, 5, 14, 0, 0, 123456, tzinfo=timezone(timedelta(hours=-5)))
        assert to_naive_utc(aware) == datetime(2026, 1, 5, 19, 0, 0)
        assert to_naive_utc(None) is None


# -----------------------------------------------------------------------------
# Text
# -----------------------------------------------------------------------------


class TestText:
    def test_clean_text(self) -> None:
        assert clean_text("  Roads &amp;\n  Bridges  ") == "Roads & Bridges"
        assert clean_text("   ") is None
        assert clean_text(42) == "42"

    def test_first_text(self) -> None:
        assert first_text(None, " ", "b", "c") == "b"
        assert first_text(None, "") is None

    def test_text_list(self) -> None:
        assert text_list("Ward 1; Ward 2, Ward 3") == ["Ward 1", "Ward 2", "Ward 3"]
        assert text_list(["Transit", " ", None]) == ["Transit"]
        assert text_list(None) is None
        assert text_list("") is None


# -----------------------------------------------------------------------------
# Identifiers
# -----------------------------------------------------------------------------


class TestIdentifiers:
    def test_content_hash_is_md5_of_joined_parts(self) -> None:
        expected = hashlib.md5("a||b".encode("utf-8")).hexdigest()
        assert content_hash("a", None, "b") == expected
        assert content_hash("a", None, "b") == content_hash(" a ", "", "b")

    def test_stable_external_id(self) -> None:
        assert stable_external_id(None, " 123 ") == "123"
        assert stable_external_id(None, fallback_parts=("x", "y")) == content_hash("x", "y")
        assert stable_external_id(None, fallback_parts=(None, "")) is None

    def test_path_identifier(self) -> None:
        assert path_identifier("/en/projects/hospital-build/?cpage=1#top") == "en/projects/hospital-build"
        assert path_identifier("https://example.ca/docs/tender.pdf") == "docs/tender.pdf"
        assert path_identifier("/") is None
        assert path_identifier(None) is None

    def test_absolute_url(self) -> None:
        assert absolute_url("https://www.merx.com", "/notice/123") == "https://www.merx.com/notice/123"
        assert absolute_url("https://www.merx.com/", "notice/123") == "https://www.merx.com/notice/123"
        assert absolute_url("https://a.ca", "https://b.ca/x") == "https://b.ca/x"
        assert absolute_url("https://a.ca", None) is None

    def test_favicon_url(self) -> None:
        assert favicon_url("https://www.toronto.ca/page") == "https://www.google.com/s2/favicons?domain=www.toronto.ca&sz=64"
        assert favicon_url(None) is None


# -----------------------------------------------------------------------------
# Status policy
# -----------------------------------------------------------------------------


class TestCreationPolicy:
    def test_allow_list(self) -> None:
        policy = CreationPolicy.allow_list()
        assert policy.permits_creation("Open")
        assert policy.permits_creation(" ACTIVE ")
        assert policy.permits_creation("published")
        assert not policy.permits_creation("Closed")
        assert not policy.permits_creation("Awarded")

    def test_blank_status_counts_as_open(self) -> None:
        assert CreationPolicy.allow_list().permits_creation(None)
        assert CreationPolicy.allow_list().permits_creation("  ")
        assert CreationPolicy.deny_list().permits_creation("")

    def test_deny_list(self) -> None:
        policy = CreationPolicy.deny_list()
        assert policy.permits_creation("Planned")
        assert policy.permits_creation("Under Construction")
        assert not policy.permits_creation("Completed")
        assert not policy.permits_creation("cancelled")
        assert not policy.permits_creation("Closed")


class TestComputedStatus:
    now = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)

    def test_past_closing_is_expired(self) -> None:
        closing = datetime(2026, 5, 1, tzinfo=UTC)
        assert computed_status("Open", closing, self.now) == "Expired"
        assert computed_status("Awarded", closing, self.now) == "Expired"

    def test_award_wording_is_awarded(self) -> None:
        closing = datetime(2026, 7, 1, tzinfo=UTC)
        assert computed_status("Awarded - Contract Signed", closing, self.now) == "Awarded"
        assert computed_status("Award pending", None, self.now) == "Awarded"

    def test_raw_status_passes_through(self) -> None:
        assert computed_status("Cancelled", None, self.now) == "Cancelled"

    def test_missing_status_is_open(self) -> None:
        assert computed_status(None, None, self.now) == "Open"
        assert computed_status("", datetime(2026, 7, 1), self.now) == "Open"

    def test_naive_values_are_utc(self) -> None:
        assert computed_status("Open", datetime(2026, 6, 1, 11, 59), datetime(2026, 6, 1, 12, 0)) == "Expired"


# -----------------------------------------------------------------------------
# Canonical record
# -----------------------------------------------------------------------------


def test_record_columns_use_storage_names_and_naive_utc() -> None:
    record = TenderRecord(
        source_key="merx-ottawa",
        external_id="123",
        title="Paving",
        date_closing_at=datetime(2026, 1, 5, 14, 0, tzinfo=timezone(timedelta(hours=-5))),
        source_raw={"a": 1},
    )
    columns = record.to_columns()

    assert columns["source_site_key"] == "merx-ottawa"
    assert columns["source_external_id"] == "123"
    assert "source_key" not in columns
    assert columns["date_closing_at"] == datetime(2026, 1, 5, 19, 0)
    assert columns["source_raw"] == {"a": 1}
