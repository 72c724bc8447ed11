"""CLI entrypoint for the incremental LingBuzz mirror."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

from fetcher import FetchExhausted
from indexing import OpenAIEmbedder, index_pending_papers
from listing import DiscoveryError
from scraper import MODE_FULL, MODE_INCREMENTAL, SCRAPE_CONCURRENCY, run_scrape
from store import ARCHIVE_DB_PATH, PaperStore, StoreError


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(description="Mirror new and changed LingBuzz papers into a local store")
    parser.add_argument(
        "--mode",
        choices=[MODE_INCREMENTAL, MODE_FULL],
        default=MODE_INCREMENTAL,
        help=(
            "'incremental' (default): stop at the first listing page with nothing new. "
            "'full': walk every listing page."
        ),
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Treat the archive as holding this many papers instead of reading the count from the front page",
    )
    parser.add_argument("--concurrency", type=int, default=SCRAPE_CONCURRENCY, help="Detail pages fetched at once")
    parser.add_argument("--db", default=ARCHIVE_DB_PATH, help="SQLite database path")
    parser.add_argument(
        "--index",
        action="store_true",
        help="After scraping, embed papers not yet indexed (needs OPENAI_API_KEY)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def run(args: argparse.Namespace) -> int:
    """Run one sync cycle; returns the process exit code."""
    with PaperStore(args.db) as store:
        try:
            stats = asyncio.run(
                run_scrape(
                    store,
                    mode=args.mode,
                    total_count=args.limit,
                    concurrency=args.concurrency,
                )
            )
        except (DiscoveryError, FetchExhausted, StoreError) as exc:
            logging.error("Scrape aborted: %s", exc)
            return 1

        stats.log_summary()

        if args.index:
            try:
                index_pending_papers(store, OpenAIEmbedder())
            except Exception as exc:
                logging.warning("Indexing failed (non-fatal): %s", exc)

    return 0


def main(argv: list[str] | None = None) -> int:
    """Initialize config and execute the pipeline."""
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
