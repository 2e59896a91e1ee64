"""
Parsing utilities for normalizing source data.

Handles the date encodings and text clean-up the portals need. Every
parser here degrades to ``None`` instead of raising, so one malformed
field never costs the rest of a record.
"""

from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import dateparser
import lxml.html
from lxml import etree

logger = logging.getLogger(__name__)


# =============================================================================
# Date Parsing
# =============================================================================


# Offsets (hours from UTC) for the abbreviations Canadian portals print
TZ_ABBREVIATIONS = {
    "UTC": 0, "GMT": 0,
    "NST": -3.5, "NDT": -2.5,
    "AST": -4, "ADT": -3,
    "EST": -5, "EDT": -4,
    "CST": -6, "CDT": -5,
    "MST": -7, "MDT": -6,
    "PST": -8, "PDT": -7,
}

_MS_DATE = re.compile(r"/Date\((-?\d+)([+-]\d{4})?\)/")
_TRAILING_ABBR = re.compile(r"\s+([A-Z]{2,4})$")


@dataclass
class ParsedDate:
    """Result of parsing a date value."""

    value: datetime | None
    original: str
    format_detected: str | None = None


def _zone(name: str | None) -> timezone | ZoneInfo:
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown time zone {name!r}, assuming UTC")
        return timezone.utc


def _to_utc(value: datetime, tz: timezone | ZoneInfo) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz)
    return value.astimezone(timezone.utc)


def parse_date(
    value: Any,
    *,
    timezone_name: str | None = None,
    formats: Iterable[str] = (),
) -> ParsedDate:
    """Parse a date/datetime from the encodings the portals use.

    Handles, in order:
    - ``datetime``/``date`` objects (naive values are read in ``timezone_name``)
    - Integers and floats as epoch milliseconds (ArcGIS date fields)
    - ``/Date(1700000000000)/`` epoch-millisecond markers (UTC)
    - Explicit ``strptime`` formats, tried in order, with an optional
      trailing zone abbreviation such as ``EST``
    - ISO 8601 strings (an offset in the string wins over ``timezone_name``)
    - Anything else ``dateparser`` can make sense of

    Args:
        value: Raw value from the source
        timezone_name: IANA zone the source publishes local times in
        formats: ``strptime`` patterns specific to the source

    Returns:
        ParsedDate whose value is timezone-aware UTC, or None on failure
    """
    if value is None or value == "":
        return ParsedDate(value=None, original="")

    original = str(value).strip()
    tz = _zone(timezone_name)

    if isinstance(value, datetime):
        return ParsedDate(_to_utc(value, tz), original, "datetime")

    if isinstance(value, date):
        return ParsedDate(_to_utc(datetime.combine(value, time.min), tz), original, "date")

    if isinstance(value, bool):
        return ParsedDate(None, original)

    if isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return ParsedDate(None, original)
        return ParsedDate(parsed, original, "epoch_ms")

    text = " ".join(original.split())
    if not text:
        return ParsedDate(None, original)

    match = _MS_DATE.search(text)
    if match:
        try:
            parsed = datetime.fromtimestamp(int(match.group(1)) / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return ParsedDate(None, original)
        return ParsedDate(parsed, original, "ms_marker")

    for fmt in formats:
        parsed = _try_format(text, fmt, tz)
        if parsed is not None:
            return ParsedDate(parsed, original, fmt)

    try:
        iso = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        iso = None
    if iso is not None:
        return ParsedDate(_to_utc(iso, tz), original, "iso8601")

    settings = {
        "TIMEZONE": timezone_name or "UTC",
        "TO_TIMEZONE": "UTC",
        "RETURN_AS_TIMEZONE_AWARE": True,
        "PREFER_DAY_OF_MONTH": "first",
        "DATE_ORDER": "MDY",
    }
    try:
        parsed = dateparser.parse(text, settings=settings)
    except (ValueError, TypeError, OverflowError) as e:
        logger.debug(f"dateparser rejected {text!r}: {e}")
        parsed = None

    if parsed is not None:
        return ParsedDate(parsed.astimezone(timezone.utc), original, "dateparser")

    return ParsedDate(None, original)


def _try_format(text: str, fmt: str, tz: timezone | ZoneInfo) -> datetime | None:
    """Try one strptime pattern, honouring a trailing zone abbreviation."""
    candidates = [(text, tz)]

    abbr = _TRAILING_ABBR.search(text)
    if abbr and abbr.group(1) in TZ_ABBREVIATIONS:
        offset = timezone(timedelta(hours=TZ_ABBREVIATIONS[abbr.group(1)]))
        candidates.insert(0, (text[: abbr.start()], offset))

    for candidate, zone in candidates:
        try:
            parsed = datetime.strptime(candidate, fmt)
        except ValueError:
            continue
        return _to_utc(parsed, zone)
    return None


def parse_datetime(
    value: Any,
    timezone_name: str | None = None,
    formats: Iterable[str] = (),
) -> datetime | None:
    """Shortcut for :func:`parse_date` returning only the instant."""
    return parse_date(value, timezone_name=timezone_name, formats=formats).value


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Drop tzinfo from an instant after converting it to UTC (storage form)."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0)


# =============================================================================
# Text Cleaning
# =============================================================================


def parse_document(html: str) -> lxml.html.HtmlElement | None:
    """Parse an HTML document or fragment; None for an empty or unparseable body."""
    if not html or not html.strip():
        return None
    try:
        return lxml.html.fromstring(html)
    except (etree.ParserError, ValueError):
        return None


def normalize_whitespace(text: str | None) -> str:
    """Collapse runs of whitespace to single spaces and trim."""
    if not text:
        return ""
    return " ".join(text.split())


def clean_html_text(text: str | None) -> str:
    """Strip tags, decode entities and collapse whitespace."""
    if not text:
        return ""
    text = re.sub(r"<br\s*/?>", " ", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", " ", text)
    return normalize_whitespace(html.unescape(text))


def clean_text(value: Any) -> str | None:
    """Clean a scalar to a trimmed string, or None when nothing is left."""
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    text = normalize_whitespace(html.unescape(value))
    return text or None


def first_text(*values: Any) -> str | None:
    """Return the first value that cleans to a non-empty string."""
    for value in values:
        text = clean_text(value)
        if text:
            return text
    return None


def text_list(value: Any) -> list[str] | None:
    """Coerce a list, or a comma/semicolon separated string, into clean strings."""
    if value is None:
        return None
    if isinstance(value, str):
        items = re.split(r"[;,]", value)
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        items = [value]
    cleaned = [text for text in (clean_text(item) for item in items) if text]
    return cleaned or None
