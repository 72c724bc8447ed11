"""Idempotent persistence of parsed papers and their relations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from author_profile import fetch_author_profile
from models import AuthorProfile, AuthorRef, ParsedPaper
from store import PaperStore

ProfileFetcher = Callable[[str], Awaitable[AuthorProfile]]

LOGGER = logging.getLogger(__name__)


async def persist_paper(
    store: PaperStore,
    paper: ParsedPaper,
    authors_by_position: dict[int, AuthorRef],
    fetch_profile: ProfileFetcher | None = fetch_author_profile,
) -> int:
    """Insert ``paper`` with its keyword and author relations; return its id.

    Only the paper insert is fatal. Relation failures are logged per keyword
    or author and the paper still counts as persisted.

    Args:
        store: Target store.
        paper: Validated record.
        authors_by_position: 1-based byline position -> author.
        fetch_profile: Enrichment lookup for authors seen for the first time;
            ``None`` disables enrichment.
    """
    paper_id = await asyncio.to_thread(store.insert_paper, paper)
    await _attach_keywords(store, paper_id, paper.keywords)

    for position, author in sorted(authors_by_position.items()):
        try:
            author_id = await ensure_author(store, author, fetch_profile)
            await asyncio.to_thread(store.insert_author_paper_relation, author_id, paper_id, position)
        except Exception:
            LOGGER.exception(
                "Failed to insert author-paper relation for username=%s paper_id=%s position=%s",
                author.username,
                paper_id,
                position,
            )

    return paper_id


async def update_paper_version(
    store: PaperStore,
    paper: ParsedPaper,
    authors_by_position: dict[int, AuthorRef],
    fetch_profile: ProfileFetcher | None = fetch_author_profile,
) -> int:
    """Apply a new archive version of ``paper``.

    Unknown papers are persisted in full. Known papers get their mutable
    fields overwritten and any newly listed keywords linked; existing
    relations are left untouched.
    """
    existing = await asyncio.to_thread(store.find_by_external_id, paper.external_id)
    if existing is None:
        return await persist_paper(store, paper, authors_by_position, fetch_profile)

    paper_id = int(existing["paper_id"])
    await asyncio.to_thread(store.update_paper, paper_id, paper)
    linked = await asyncio.to_thread(store.keyword_ids_for_paper, paper_id)
    await _attach_keywords(store, paper_id, paper.keywords, skip_ids=linked)
    return paper_id


async def ensure_author(
    store: PaperStore,
    author: AuthorRef,
    fetch_profile: ProfileFetcher | None = fetch_author_profile,
) -> int:
    """Existing author id by username, or create the author.

    New authors are enriched from their profile page once; a failed profile
    fetch stores empty enrichment fields instead.
    """
    existing = await asyncio.to_thread(store.find_author_by_username, author.username)
    if existing is not None:
        return int(existing["author_id"])

    profile = AuthorProfile()
    if fetch_profile is not None and author.profile_url:
        try:
            profile = await fetch_profile(author.profile_url)
        except Exception as exc:
            LOGGER.warning("Failed to fetch author profile for %s: %s", author.username, exc)

    return await asyncio.to_thread(store.insert_author, author, profile)


async def _attach_keywords(
    store: PaperStore,
    paper_id: int,
    keywords: list[str],
    skip_ids: set[int] | None = None,
) -> None:
    skip_ids = skip_ids or set()
    # dict.fromkeys keeps first-seen order while dropping duplicates
    for keyword in dict.fromkeys(keywords):
        if not keyword:
            continue
        try:
            await asyncio.to_thread(store.upsert_keyword, keyword)
            keyword_id = await asyncio.to_thread(store.find_keyword_id, keyword)
            if keyword_id is None:
                LOGGER.warning("No keyword_id found for keyword: %s", keyword)
                continue
            if keyword_id in skip_ids:
                continue
            await asyncio.to_thread(store.insert_keyword_paper_relation, keyword_id, paper_id)
        except Exception:
            LOGGER.exception(
                "Failed to insert keyword-paper relation for keyword=%r paper_id=%s",
                keyword,
                paper_id,
            )
