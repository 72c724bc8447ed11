"""Author profile enrichment (email, affiliation, website)."""

from __future__ import annotations

import logging

from fetcher import fetch_text
from html_query import all_matching, find_first, parse_html, text_of
from models import AuthorProfile

# 0-based row index of each field in the profile's key/value table.
_EMAIL_ROW = 1
_AFFILIATION_ROW = 2
_WEBSITE_ROW = 3

LOGGER = logging.getLogger(__name__)


def parse_author_profile(html: str) -> AuthorProfile:
    """Read enrichment fields by fixed row position; missing cells become ``""``."""
    soup = parse_html(html)
    table = find_first(soup, "profile.table")
    rows = all_matching(table, "profile.rows") if table is not None else []

    def value_at(index: int) -> str:
        if index >= len(rows):
            return ""
        return text_of(find_first(rows[index], "profile.value")).strip()

    return AuthorProfile(
        # Addresses are obfuscated as "name @ host" on the profile page.
        email=value_at(_EMAIL_ROW).replace(" @ ", "@"),
        affiliation=value_at(_AFFILIATION_ROW),
        website=value_at(_WEBSITE_ROW),
    )


async def fetch_author_profile(profile_url: str) -> AuthorProfile:
    LOGGER.debug("Fetching author profile: %s", profile_url)
    return parse_author_profile(await fetch_text(profile_url))
