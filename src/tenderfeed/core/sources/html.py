"""lxml helpers shared by the HTML-scraping adapters."""

from __future__ import annotations

import lxml.html

from tenderfeed.core.normalize import normalize_whitespace, parse_document

__all__ = ["parse_document", "node_text", "select_text", "select_attr"]


def node_text(node: lxml.html.HtmlElement | None) -> str | None:
    """Whitespace-collapsed text content, or None when empty."""
    if node is None:
        return None
    text = normalize_whitespace(node.text_content())
    return text or None


def select_text(root: lxml.html.HtmlElement, selector: str) -> str | None:
    """Text of the first node matching a CSS selector."""
    found = root.cssselect(selector)
    return node_text(found[0]) if found else None


def select_attr(root: lxml.html.HtmlElement, selector: str, attr: str) -> str | None:
    """Attribute of the first node matching a CSS selector."""
    found = root.cssselect(selector)
    if not found:
        return None
    value = (found[0].get(attr) or "").strip()
    return value or None
