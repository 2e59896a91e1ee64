"""
Credential and session handling for portals behind anti-forgery checks.

Credentials are supplied out-of-band (operator options or persisted
source settings). When a raw captured ``Cookie`` header is available the
specific named values are pulled out of it, so the session id and token
always come from the same browser session.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import unquote

from tenderfeed.core.normalize import parse_document


class SourceError(Exception):
    """Adapter-level failure that is not a transport problem."""

    def __init__(self, message: str, source_key: str | None = None):
        super().__init__(message)
        self.source_key = source_key


# =============================================================================
# Cookie Helpers
# =============================================================================

_QUOTES = " \t\n\r\0\x0b\"'"


def normalize_credential_value(value: str | None, name: str) -> str:
    """Clean a pasted credential value.

    Accepts a bare value, ``name=value`` or a whole cookie string that
    contains ``name=value``; strips quotes and URL-decodes.
    """
    text = (value or "").strip()
    if not text:
        return ""

    match = re.search(re.escape(name) + r"=([^;\s]+)", text, flags=re.IGNORECASE)
    if match:
        text = match.group(1)

    return unquote(text.strip(_QUOTES))


def parse_cookie_header(header: str | None) -> dict[str, str]:
    """Split a ``Cookie`` header into an ordered name -> value mapping."""
    cookies: dict[str, str] = {}
    for part in (header or "").split(";"):
        name, sep, value = part.strip().partition("=")
        if not sep or not name:
            continue
        cookies[name.strip()] = value.strip()
    return cookies


def build_cookie_header(cookies: Mapping[str, str]) -> str:
    return "; ".join(f"{name}={value}" for name, value in cookies.items() if value is not None)


def extract_cookie_value(header: str | None, name: str) -> str | None:
    """Value of one cookie in a raw header (case-insensitive name), normalized."""
    if not header:
        return None
    match = re.search(r"(?:^|;\s*)" + re.escape(name) + r"=([^;]+)", header, flags=re.IGNORECASE)
    if not match:
        return None
    return normalize_credential_value(match.group(1), name) or None


# =============================================================================
# Session Credentials
# =============================================================================


@dataclass(frozen=True)
class SessionCredentials:
    """A session cookie plus anti-forgery token pair, with any other captured cookies."""

    session_id: str
    csrf_token: str
    cookie_header: str
    session_cookie: str = "ASP.NET_SessionId"
    csrf_cookie: str = "CSRFToken"

    @classmethod
    def resolve(
        cls,
        session_id: str | None = None,
        csrf_token: str | None = None,
        cookie_header: str | None = None,
        session_cookie: str = "ASP.NET_SessionId",
        csrf_cookie: str = "CSRFToken",
    ) -> "SessionCredentials":
        """Combine separately supplied values with a captured cookie header.

        Values found in the cookie header win over the separate ones so the
        pair stays consistent. Other cookies in the header are kept.

        Raises:
            SourceError: If either value is still missing
        """
        header = (cookie_header or "").strip()

        session = extract_cookie_value(header, session_cookie) or normalize_credential_value(
            session_id, session_cookie
        )
        token = extract_cookie_value(header, csrf_cookie) or normalize_credential_value(
            csrf_token, csrf_cookie
        )

        missing = [n for n, v in ((session_cookie, session), (csrf_cookie, token)) if not v]
        if missing:
            raise SourceError(
                "Missing session credentials: "
                + ", ".join(missing)
                + ". Provide session_id and csrf_token (or cookie_header) from a browser session."
            )

        if header:
            lowered = header.lower()
            if f"{session_cookie.lower()}=" not in lowered:
                header += f"; {session_cookie}={session}"
            if f"{csrf_cookie.lower()}=" not in lowered:
                header += f"; {csrf_cookie}={token}"
        else:
            header = build_cookie_header({session_cookie: session, csrf_cookie: token})

        return cls(
            session_id=session,
            csrf_token=token,
            cookie_header=header,
            session_cookie=session_cookie,
            csrf_cookie=csrf_cookie,
        )


# =============================================================================
# Form Token Extraction
# =============================================================================

VERIFICATION_FIELD = "__RequestVerificationToken"
TOKEN_COOKIES = ("XSRF-TOKEN", VERIFICATION_FIELD)


def extract_verification_token(html: str, cookies: Mapping[str, str] | None = None) -> str | None:
    """Anti-forgery token from a hidden input, else from a token cookie."""
    root = parse_document(html)
    if root is not None:
        for node in root.cssselect(f'input[name="{VERIFICATION_FIELD}"]'):
            value = (node.get("value") or "").strip()
            if value:
                return value

    for name in TOKEN_COOKIES:
        value = (cookies or {}).get(name)
        if value:
            return unquote(value)
    return None


def extract_hidden_fields(html: str) -> dict[str, str]:
    """Hidden ``<input>`` values of a WebForms page (view state, event validation, ...)."""
    root = parse_document(html)
    if root is None:
        return {}
    return {
        node.get("name"): node.get("value") or ""
        for node in root.cssselect('input[type="hidden"][name]')
    }
