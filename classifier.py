"""Map listing rows to scrape actions using the persisted store."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from models import STATUS_FRESHLY_CHANGED, FullScrape, ListingRow, ScrapeAction, Skip, UpdateVersion

LOGGER = logging.getLogger(__name__)


class PaperLookup(Protocol):
    def find_by_external_id(self, external_id: str) -> Any | None: ...


async def classify_row(row: ListingRow, store: PaperLookup) -> ScrapeAction:
    """Decide what to do with one listing row.

    - ``"freshly changed"`` -> ``UpdateVersion`` without consulting the store.
    - any other status (``"new"`` or a date) -> ``Skip`` if the id is already
      stored, else ``FullScrape``.

    Store errors propagate to the caller.
    """
    if row.status == STATUS_FRESHLY_CHANGED:
        return UpdateVersion(row)

    existing = await asyncio.to_thread(store.find_by_external_id, row.external_id)
    if existing is not None:
        return Skip(row, f"Paper {row.external_id} already present")
    return FullScrape(row)


async def classify_rows(rows: list[ListingRow], store: PaperLookup) -> list[ScrapeAction]:
    """Classify rows in order; rows are independent of each other."""
    actions = [await classify_row(row, store) for row in rows]
    LOGGER.debug(
        "Classified %s rows: %s full, %s update, %s skip",
        len(actions),
        sum(isinstance(a, FullScrape) for a in actions),
        sum(isinstance(a, UpdateVersion) for a in actions),
        sum(isinstance(a, Skip) for a in actions),
    )
    return actions
