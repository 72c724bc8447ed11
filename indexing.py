"""Hand unindexed papers to a batch embedding consumer."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from openai import OpenAI

from store import PaperStore

OPENAI_EMBEDDING_MODEL = os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small")
VECTOR_OUTPUT_PATH = os.getenv("VECTOR_OUTPUT_PATH", "paper_vectors.jsonl")
INDEX_BATCH_SIZE = int(os.getenv("INDEX_BATCH_SIZE", "100"))
INDEX_MAX_PAPERS = int(os.getenv("INDEX_MAX_PAPERS", "500"))

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PendingPaper:
    paper_id: int
    external_id: str
    title: str
    abstract: str


EmbedBatch = Callable[[list[PendingPaper]], None]


def index_pending_papers(
    store: PaperStore,
    embed_batch: EmbedBatch,
    batch_size: int = INDEX_BATCH_SIZE,
    max_papers: int = INDEX_MAX_PAPERS,
) -> dict[str, Any]:
    """Push up to ``max_papers`` unindexed papers through ``embed_batch``.

    Each batch is marked indexed only after ``embed_batch`` returns. A failed
    batch is recorded in ``errors`` and left pending for the next run.
    """
    pending = [
        PendingPaper(
            paper_id=int(row["paper_id"]),
            external_id=row["external_id"],
            title=row["paper_title"],
            abstract=row["abstract"] or "",
        )
        for row in store.select_unindexed_papers(max_papers)
    ]

    indexed = 0
    errors: list[str] = []
    for start in range(0, len(pending), batch_size):
        batch = pending[start : start + batch_size]
        try:
            embed_batch(batch)
            store.mark_papers_indexed(p.paper_id for p in batch)
            indexed += len(batch)
        except Exception as exc:  # keep remaining batches going
            LOGGER.exception("Indexing batch %s failed", start // batch_size)
            errors.append(f"Batch {start // batch_size}: {exc}")

    remaining = store.count_unindexed_papers()
    LOGGER.info("Indexing complete: indexed=%s remaining=%s errors=%s", indexed, remaining, len(errors))

    result: dict[str, Any] = {"indexed": indexed, "remaining": remaining}
    if errors:
        result["errors"] = errors
    return result


class OpenAIEmbedder:
    """Embed ``"<title>. <abstract>"`` with OpenAI and append vectors to a JSONL file."""

    def __init__(self, output_path: str | Path = VECTOR_OUTPUT_PATH, model: str = OPENAI_EMBEDDING_MODEL) -> None:
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY environment variable is required")
        self.client = OpenAI(api_key=api_key)
        self.output_path = Path(output_path)
        self.model = model

    def __call__(self, batch: list[PendingPaper]) -> None:
        texts = [f"{p.title}. {p.abstract}" for p in batch]
        response = self.client.embeddings.create(model=self.model, input=texts)
        vectors = [item.embedding for item in sorted(response.data, key=lambda d: d.index)]
        if len(vectors) != len(batch):
            raise RuntimeError(f"Expected {len(batch)} embeddings, got {len(vectors)}")

        with self.output_path.open("a", encoding="utf-8") as fh:
            for paper, values in zip(batch, vectors):
                record = {
                    "id": paper.external_id,
                    "values": values,
                    "metadata": {
                        "external_id": paper.external_id,
                        "title": paper.title,
                        "paper_id": paper.paper_id,
                    },
                }
                fh.write(json.dumps(record) + "\n")
        LOGGER.info("Wrote %s vectors to %s", len(batch), self.output_path)
