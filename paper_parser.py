"""Detail-page parsing into validated ``ParsedPaper`` records."""

from __future__ import annotations

import logging
import re
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Tag

from html_query import all_matching, find_first, is_text_node, parse_html, text_of
from keywords import split_keywords
from listing import detail_url_for
from models import ParsedPaper

# Title of the archive front page, served instead of a 404 for unknown ids.
NOT_FOUND_PAGE_TITLE = "lingbuzz - archive of linguistics articles"

_BR_SPLIT_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_INTEGER_RE = re.compile(r"\d+")
_FORMAT_PREFIX = "Format:"

# Label variants seen on detail pages, after key normalization.
_PUBLISHED_IN_KEYS = ("published in", "publication", "published")
_KEYWORDS_KEYS = ("keywords", "key words", "key-words")
_DOWNLOADS_KEYS = ("downloaded", "downloads", "downloaded times")

LOGGER = logging.getLogger(__name__)


def strip_control_chars(value: str) -> str:
    """Drop C0 and C1 control characters (including newlines and tabs)."""
    return "".join(
        char for char in value if not (ord(char) <= 31 or 127 <= ord(char) <= 159)
    )


def normalize_text(value: str) -> str:
    """Single-quote, single-space, control-character-free text."""
    # Whitespace is collapsed before control characters are dropped so that
    # newlines become spaces rather than gluing words together.
    collapsed = _WHITESPACE_RE.sub(" ", value.replace('"', "'"))
    return strip_control_chars(collapsed).strip()


def parse_header_lines(soup: BeautifulSoup) -> list[str]:
    """Non-empty text lines of the header block, split on ``<br>``."""
    center = find_first(soup, "detail.header")
    if center is None:
        return []

    inner_html = center.decode_contents()
    lines = (text_of(parse_html(chunk)).strip() for chunk in _BR_SPLIT_RE.split(inner_html))
    return [line for line in lines if line]


def normalize_table_key(key: str) -> str:
    """``"Published in:"`` -> ``"published in"``."""
    return _WHITESPACE_RE.sub(" ", key.strip().rstrip(":").strip().lower())


def parse_metadata_table(soup: BeautifulSoup) -> dict[str, str]:
    table = find_first(soup, "detail.meta_table")
    if table is None:
        return {}

    values: dict[str, str] = {}
    for row in all_matching(table, "detail.meta_rows"):
        cells = [text_of(td).strip() for td in all_matching(row, "detail.meta_cells")]
        cells = [cell for cell in cells if cell]
        if len(cells) >= 2:
            values[normalize_table_key(cells[0])] = cells[1]
    return values


def _table_value(table: dict[str, str], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = table.get(key)
        if value:
            return value
    return ""


def parse_download_count(table: dict[str, str]) -> int:
    match = _INTEGER_RE.search(_table_value(table, _DOWNLOADS_KEYS))
    return int(match.group(0)) if match else 0


def extract_raw_abstract(soup: BeautifulSoup) -> str:
    """First non-empty free-text node after the metadata table.

    Siblings of the header block are walked instead when the table is missing.
    Comment nodes and whitespace-only text are passed over.
    """
    anchor: Tag | None = find_first(soup, "detail.meta_table") or find_first(soup, "detail.header")
    if anchor is None:
        return ""

    for node in anchor.next_siblings:
        if is_text_node(node) and node.strip():
            return str(node)
    return ""


def parse_abstract(raw: str) -> str:
    if raw.lstrip().startswith(_FORMAT_PREFIX):
        return ""
    return normalize_text(raw)


def validation_errors(paper: ParsedPaper) -> list[str]:
    """Schema checks run before a record may be persisted."""
    errors: list[str] = []
    for name in ("external_id", "title", "date", "published_in", "keywords_raw", "abstract", "download_url"):
        if not isinstance(getattr(paper, name), str):
            errors.append(f"{name} must be a string")
    if not paper.external_id:
        errors.append("external_id is required")
    if not paper.title:
        errors.append("title is required")
    if not isinstance(paper.keywords, list) or not all(isinstance(k, str) for k in paper.keywords):
        errors.append("keywords must be a list of strings")
    if (
        not isinstance(paper.download_count, int)
        or isinstance(paper.download_count, bool)
        or paper.download_count < 0
    ):
        errors.append("download_count must be a non-negative integer")
    parsed_url = urlparse(paper.detail_url) if isinstance(paper.detail_url, str) else None
    if parsed_url is None or parsed_url.scheme not in ("http", "https") or not parsed_url.netloc:
        errors.append(f"detail_url is not a valid URL: {paper.detail_url!r}")
    return errors


def parse_paper_page(html: str, external_id: str, download_url: str = "") -> ParsedPaper | None:
    """Parse a detail page. Returns ``None`` for not-found, malformed or invalid pages."""
    soup = parse_html(html)

    page_title = text_of(find_first(soup, "detail.page_title")).strip()
    if page_title == NOT_FOUND_PAGE_TITLE:
        LOGGER.info("No paper found for %s", external_id)
        return None

    header = parse_header_lines(soup)
    if len(header) < 2:
        LOGGER.warning("Missing header data for paper %s", external_id)
        return None

    table = parse_metadata_table(soup)
    keywords_raw = normalize_text(_table_value(table, _KEYWORDS_KEYS))

    paper = ParsedPaper(
        external_id=external_id,
        title=normalize_text(header[0]),
        date=normalize_text(header[2]) if len(header) > 2 else "",
        published_in=normalize_text(_table_value(table, _PUBLISHED_IN_KEYS)),
        keywords_raw=keywords_raw,
        keywords=split_keywords(keywords_raw),
        abstract=parse_abstract(extract_raw_abstract(soup)),
        download_count=parse_download_count(table),
        download_url=download_url,
        detail_url=detail_url_for(external_id),
    )

    errors = validation_errors(paper)
    if errors:
        LOGGER.error("Validation failed for paper %s: %s", external_id, "; ".join(errors))
        return None
    return paper
