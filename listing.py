"""Listing-page pagination and row extraction for the LingBuzz archive."""

from __future__ import annotations

import logging
import os
import re
from urllib.parse import unquote, urljoin, urlsplit, urlunsplit

from bs4 import Tag

from fetcher import fetch_text
from html_query import all_matching, find_first, parse_html, text_of
from models import AuthorRef, ListingRow

ARCHIVE_BASE_URL = os.getenv("ARCHIVE_BASE_URL", "https://ling.auf.net").rstrip("/")
LISTING_PATH = "/lingbuzz/_listing"

# The first listing page holds 30 entries, every later page holds 100.
FIRST_PAGE_START = 1
SECOND_PAGE_START = 31
LISTING_PAGE_SIZE = 100

EXTERNAL_ID_LENGTH = 6
SENTINEL_EXTERNAL_ID = "0" * EXTERNAL_ID_LENGTH

_EXTERNAL_ID_RE = re.compile(r"/lingbuzz/(\d{%d})" % EXTERNAL_ID_LENGTH)
_USERNAME_RE = re.compile(r"/_person/(.*)")
_INTEGER_RE = re.compile(r"\d+")

LOGGER = logging.getLogger(__name__)


class DiscoveryError(RuntimeError):
    """The total item count could not be read from the archive front page."""


def detail_url_for(external_id: str) -> str:
    return f"{ARCHIVE_BASE_URL}/lingbuzz/{external_id}"


def listing_urls(total_count: int) -> list[str]:
    """Listing page URLs covering ``total_count`` entries.

    Starts follow the archive's schedule: 1, 31, then +100 per page, until a
    start exceeds ``total_count``.
    """
    urls: list[str] = []
    start = FIRST_PAGE_START
    while start <= total_count:
        urls.append(f"{ARCHIVE_BASE_URL}{LISTING_PATH}?start={start}")
        start = SECOND_PAGE_START if start == FIRST_PAGE_START else start + LISTING_PAGE_SIZE
    return urls


def parse_total_count(html: str) -> int:
    """Extract the archive size from the front page's count link.

    The link text may wrap inline markup and newlines; the last integer token
    is the total.
    """
    soup = parse_html(html)
    element = find_first(soup, "front.count")
    if element is None:
        raise DiscoveryError("Paper count element not found on archive front page")

    numbers = _INTEGER_RE.findall(text_of(element))
    if not numbers:
        raise DiscoveryError(f"No paper count in front page text: {text_of(element)!r}")
    return int(numbers[-1])


async def discover_total_count() -> int:
    html = await fetch_text(ARCHIVE_BASE_URL)
    total = parse_total_count(html)
    LOGGER.info("Archive reports %s papers", total)
    return total


async def generate_listing_urls(total_count: int | None = None) -> list[str]:
    """Listing URLs for ``total_count`` entries, discovering the count if not given."""
    if total_count is None:
        total_count = await discover_total_count()
    return listing_urls(total_count)


def extract_row(row: Tag) -> ListingRow | None:
    """Parse one ``<tr>`` of a listing table; ``None`` for non-data rows.

    Cells are, in order: authors, status, download link, title link.
    """
    cells = all_matching(row, "listing.cells")
    if len(cells) < 4:
        return None

    author_cell, status_cell, file_cell, title_cell = cells[:4]

    authors: dict[int, AuthorRef] = {}
    for position, link in enumerate(all_matching(author_cell, "listing.links"), start=1):
        authors[position] = _author_from_link(link)

    download_url = ""
    download_link = find_first(file_cell, "listing.links")
    if download_link is not None and download_link.get("href"):
        download_url = _strip_query(urljoin(ARCHIVE_BASE_URL, download_link["href"]))

    title_link = find_first(title_cell, "listing.links")
    title = text_of(title_link).strip()
    href = title_link.get("href", "") if title_link is not None else ""
    match = _EXTERNAL_ID_RE.search(href)
    if match:
        external_id = match.group(1)
    else:
        external_id = SENTINEL_EXTERNAL_ID
        LOGGER.warning(
            "No %s-digit id in detail link %r (title=%r); using sentinel id %s",
            EXTERNAL_ID_LENGTH,
            href,
            title,
            SENTINEL_EXTERNAL_ID,
        )

    return ListingRow(
        external_id=external_id,
        title=title,
        status=text_of(status_cell).strip(),
        authors=authors,
        download_url=download_url,
        detail_url=detail_url_for(external_id),
    )


def _author_from_link(link: Tag) -> AuthorRef:
    # Link text is "Last, First"
    last_name, _, first_name = text_of(link).strip().partition(", ")
    href = link.get("href", "")
    username_match = _USERNAME_RE.search(unquote(href))
    return AuthorRef(
        first_name=first_name,
        last_name=last_name,
        profile_url=urljoin(ARCHIVE_BASE_URL, href) if href else "",
        username=username_match.group(1) if username_match else "",
    )


def _strip_query(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def parse_listing_page(html: str, url: str = "") -> list[ListingRow]:
    """Extract all data rows from a listing page's main table."""
    soup = parse_html(html)
    tables = all_matching(soup.body, "listing.tables") if soup.body is not None else []
    main_table = find_first(tables[2], "listing.main_table") if len(tables) > 2 else None
    if main_table is None:
        LOGGER.warning("Main table not found on listing page: %s", url)
        return []

    rows: list[ListingRow] = []
    for tr in all_matching(main_table, "listing.rows"):
        parsed = extract_row(tr)
        if parsed is not None:
            rows.append(parsed)
    return rows


async def fetch_listing_page(url: str) -> list[ListingRow]:
    LOGGER.info("Fetching listing page: %s", url)
    html = await fetch_text(url)
    return parse_listing_page(html, url)
