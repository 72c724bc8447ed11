"""Incremental archive synchronization: pages -> rows -> actions -> store."""

from __future__ import annotations

import logging
import os

from author_profile import fetch_author_profile
from classifier import classify_rows
from concurrency import map_with_concurrency
from fetcher import fetch_text
from listing import fetch_listing_page, generate_listing_urls
from models import RunStats, ScrapeAction, Skip, UpdateVersion
from paper_parser import parse_paper_page
from persist import ProfileFetcher, persist_paper, update_paper_version
from store import PaperStore

MODE_INCREMENTAL = "incremental"
MODE_FULL = "full"
SCRAPE_CONCURRENCY = int(os.getenv("SCRAPE_CONCURRENCY", "5"))

LOGGER = logging.getLogger(__name__)


async def process_action(
    action: ScrapeAction,
    store: PaperStore,
    stats: RunStats,
    fetch_profile: ProfileFetcher | None = fetch_author_profile,
) -> None:
    """Carry out one action, recording the outcome in ``stats``.

    Never raises: fetch, parse and persistence failures of a single row are
    logged and counted so the rest of the page keeps going.
    """
    if isinstance(action, Skip):
        stats.skipped += 1
        return

    row = action.row

    try:
        html = await fetch_text(row.detail_url)
        paper = parse_paper_page(html, row.external_id, download_url=row.download_url)
        if paper is None:
            LOGGER.warning("Could not parse paper %s", row.external_id)
            stats.failed += 1
            return

        if isinstance(action, UpdateVersion):
            await update_paper_version(store, paper, row.authors, fetch_profile)
            stats.version_updates += 1
            LOGGER.info("Applied version update for paper %s", row.external_id)
        else:
            await persist_paper(store, paper, row.authors, fetch_profile)
            stats.full_scrapes += 1
            LOGGER.info("Scraped and persisted paper %s", row.external_id)
    except Exception:  # broad by design to keep the page going
        stats.failed += 1
        LOGGER.exception("Failed to process paper %s", row.external_id)


async def run_scrape(
    store: PaperStore,
    mode: str = MODE_INCREMENTAL,
    total_count: int | None = None,
    concurrency: int = SCRAPE_CONCURRENCY,
    fetch_profile: ProfileFetcher | None = fetch_author_profile,
) -> RunStats:
    """Mirror new and changed archive entries into ``store``.

    Listing pages are handled strictly in order. Rows within a page run
    through a sliding window of ``concurrency`` workers. In incremental mode
    the run stops at the first page where every row is skipped.

    Discovery, listing fetch and classification errors propagate.
    """
    stats = RunStats()
    LOGGER.info("Starting scraper in %s mode", mode)

    urls = await generate_listing_urls(total_count)
    LOGGER.info("Generated %s listing page URLs", len(urls))

    async def handle(action: ScrapeAction) -> None:
        await process_action(action, store, stats, fetch_profile)

    for url in urls:
        rows = await fetch_listing_page(url)
        actions = await classify_rows(rows, store)
        actionable = [a for a in actions if not isinstance(a, Skip)]
        stats.pages_processed += 1

        if mode != MODE_FULL and not actionable:
            stats.skipped += len(actions)
            LOGGER.info(
                "No actionable rows on page %s, stopping incremental scrape",
                stats.pages_processed,
            )
            break

        LOGGER.info(
            "Page %s: %s actionable / %s total rows",
            stats.pages_processed,
            len(actionable),
            len(rows),
        )
        await map_with_concurrency(actions, concurrency, handle)

    return stats
