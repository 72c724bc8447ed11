"""Narrow HTML query layer over BeautifulSoup.

All CSS selectors for the archive's pages live in ``SELECTORS`` so that a
layout change on the archive side is fixed in one place. Parsers ask for a
selector *intent* (e.g. ``"detail.header"``) rather than a raw selector.
"""

from __future__ import annotations

from bs4 import BeautifulSoup, NavigableString, Tag

# HTML5 tree construction: implied end tags (</td>, </tr>, </p>) are closed
# the way a browser closes them.
HTML_PARSER = "html5lib"

SELECTORS: dict[str, str] = {
    # Front page: "<center><b><a>... 12345 papers</a></b></center>"
    "front.count": "center > b > a",
    # Listing page: the data table is nested inside the third top-level table.
    "listing.tables": "table",
    "listing.main_table": "td > table",
    "listing.rows": "tr",
    "listing.cells": "td",
    "listing.links": "a",
    # Detail page
    "detail.page_title": "title",
    "detail.header": "body > center",
    "detail.meta_table": "body > table",
    "detail.meta_rows": "tr",
    "detail.meta_cells": "td",
    # Author profile: rows of a key/value table, value cells carry class="value"
    "profile.table": "body > table",
    "profile.rows": "tr",
    "profile.value": "td.value",
}


def parse_html(html: str) -> BeautifulSoup:
    """Parse a page or a markup fragment."""
    return BeautifulSoup(html, HTML_PARSER)


def find_first(node: Tag, intent: str) -> Tag | None:
    """First descendant of ``node`` matching the selector intent."""
    return node.select_one(SELECTORS[intent])


def all_matching(node: Tag, intent: str) -> list[Tag]:
    return list(node.select(SELECTORS[intent]))


def text_of(node: Tag | NavigableString | None) -> str:
    if node is None:
        return ""
    if isinstance(node, Tag):
        return node.get_text()
    return str(node)


def is_text_node(node: object) -> bool:
    """True for plain text nodes (comments and other special strings excluded)."""
    return isinstance(node, NavigableString) and type(node) is NavigableString
