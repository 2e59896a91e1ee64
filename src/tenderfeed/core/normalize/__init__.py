"""Normalization of source rows into canonical tender records."""

from .parsing import (
    ParsedDate,
    clean_html_text,
    clean_text,
    first_text,
    normalize_whitespace,
    parse_date,
    parse_document,
    parse_datetime,
    text_list,
    to_naive_utc,
)
from .identifiers import (
    absolute_url,
    content_hash,
    favicon_url,
    path_identifier,
    stable_external_id,
)
from .status import (
    CLOSED_STATUSES,
    DEFAULT_POLICY,
    OPEN_STATUSES,
    CreationPolicy,
    computed_status,
)
from .canonical import DATE_FIELDS, TenderRecord

__all__ = [
    # Parsing
    "ParsedDate",
    "parse_date",
    "parse_datetime",
    "to_naive_utc",
    "normalize_whitespace",
    "clean_html_text",
    "clean_text",
    "first_text",
    "text_list",
    "parse_document",
    # Identifiers
    "absolute_url",
    "content_hash",
    "favicon_url",
    "path_identifier",
    "stable_external_id",
    # Status
    "CreationPolicy",
    "DEFAULT_POLICY",
    "OPEN_STATUSES",
    "CLOSED_STATUSES",
    "computed_status",
    # Canonical
    "DATE_FIELDS",
    "TenderRecord",
]
