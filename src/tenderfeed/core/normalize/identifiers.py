"""
Stable identifiers and URL helpers.

The same real-world listing must map to the same external id on every
run, so ids are taken from the source when it offers one and derived
deterministically otherwise.
"""

from __future__ import annotations

import hashlib
from typing import Any
from urllib.parse import urljoin, urlparse

from .parsing import clean_text


def content_hash(*parts: Any) -> str:
    """md5 hex digest of the ``|``-joined parts (None counts as empty)."""
    joined = "|".join("" if p is None else str(p).strip() for p in parts)
    return hashlib.md5(joined.encode("utf-8")).hexdigest()


def stable_external_id(*candidates: Any, fallback_parts: tuple[Any, ...] = ()) -> str | None:
    """Pick the first usable native id, else hash the fallback parts.

    Args:
        candidates: Native id fields in order of preference
        fallback_parts: Distinguishing fields to hash when no id exists

    Returns:
        External id, or None when nothing at all identifies the record
    """
    for candidate in candidates:
        text = clean_text(candidate)
        if text:
            return text
    if any(clean_text(p) for p in fallback_parts):
        return content_hash(*fallback_parts)
    return None


def path_identifier(href: str | None) -> str | None:
    """Identifier derived from a link: its path without query, fragment or edge slashes."""
    if not href:
        return None
    path = href.split("?", 1)[0].split("#", 1)[0]
    if "://" in path:
        path = urlparse(path).path
    path = path.strip().strip("/")
    return path or None


def absolute_url(base: str, href: str | None) -> str | None:
    """Resolve a possibly relative link against a source's base URL."""
    if not href:
        return None
    href = href.strip()
    if href.startswith(("http://", "https://")):
        return href
    return urljoin(base.rstrip("/") + "/", href.lstrip("/"))


def favicon_url(source_url: str | None) -> str | None:
    """Favicon service URL for the host of a source URL."""
    if not source_url:
        return None
    host = urlparse(source_url).hostname
    if not host:
        return None
    return f"https://www.google.com/s2/favicons?domain={host}&sz=64"
