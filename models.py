"""Shared typed models for the archive mirror."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

LOGGER = logging.getLogger(__name__)

STATUS_FRESHLY_CHANGED = "freshly changed"


@dataclass(frozen=True, slots=True)
class AuthorRef:
    """Author as linked from a listing row. ``username`` is the natural key."""

    first_name: str
    last_name: str
    profile_url: str
    username: str


@dataclass(frozen=True, slots=True)
class AuthorProfile:
    """Enrichment fields scraped from an author's profile page."""

    email: str = ""
    affiliation: str = ""
    website: str = ""


@dataclass(frozen=True, slots=True)
class ListingRow:
    """One data row of a listing page.

    ``status`` is ``"new"``, ``"freshly changed"`` or an arbitrary date string.
    ``authors`` maps the 1-based byline position to the author.
    """

    external_id: str
    title: str
    status: str
    authors: dict[int, AuthorRef]
    download_url: str
    detail_url: str


@dataclass(slots=True)
class ParsedPaper:
    """Normalized detail page record, validated before persistence."""

    external_id: str
    title: str
    date: str
    published_in: str
    keywords_raw: str
    keywords: list[str]
    abstract: str
    download_count: int
    download_url: str
    detail_url: str


@dataclass(frozen=True, slots=True)
class FullScrape:
    row: ListingRow


@dataclass(frozen=True, slots=True)
class UpdateVersion:
    row: ListingRow


@dataclass(frozen=True, slots=True)
class Skip:
    row: ListingRow
    reason: str


ScrapeAction = FullScrape | UpdateVersion | Skip


@dataclass(slots=True)
class RunStats:
    """Per-run counters, created by the orchestrator and returned at the end."""

    pages_processed: int = 0
    full_scrapes: int = 0
    version_updates: int = 0
    skipped: int = 0
    failed: int = 0
    started_at: float = field(default_factory=time.monotonic)

    @property
    def duration_seconds(self) -> float:
        return time.monotonic() - self.started_at

    def as_dict(self) -> dict[str, int]:
        return {
            "pages_processed": self.pages_processed,
            "full_scrapes": self.full_scrapes,
            "version_updates": self.version_updates,
            "skipped": self.skipped,
            "failed": self.failed,
        }

    def log_summary(self) -> None:
        LOGGER.info("=== Scraping statistics ===")
        LOGGER.info("Duration: %.2fs", self.duration_seconds)
        for name, value in self.as_dict().items():
            LOGGER.info("%s: %s", name.replace("_", " ").capitalize(), value)
