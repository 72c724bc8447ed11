import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from indexing import OpenAIEmbedder, PendingPaper, index_pending_papers
from models import ParsedPaper
from store import PaperStore


def _paper(external_id: str) -> ParsedPaper:
    return ParsedPaper(
        external_id=external_id,
        title=f"Paper {external_id}",
        date="",
        published_in="",
        keywords_raw="",
        keywords=[""],
        abstract=f"Abstract {external_id}.",
        download_count=0,
        download_url="",
        detail_url=f"https://ling.auf.net/lingbuzz/{external_id}",
    )


@pytest.fixture
def store(tmp_path: Path):
    with PaperStore(tmp_path / "archive.db") as s:
        for n in range(5):
            s.insert_paper(_paper(f"00000{n}"))
        yield s


def test_index_pending_papers_batches_and_marks(store: PaperStore) -> None:
    batches: list[list[PendingPaper]] = []

    result = index_pending_papers(store, batches.append, batch_size=2, max_papers=10)

    assert [len(b) for b in batches] == [2, 2, 1]
    assert batches[0][0].external_id == "000000"
    assert batches[0][0].abstract == "Abstract 000000."
    assert result == {"indexed": 5, "remaining": 0}
    assert store.count_unindexed_papers() == 0


def test_failed_batch_stays_pending(store: PaperStore) -> None:
    calls = 0

    def embed(batch: list[PendingPaper]) -> None:
        nonlocal calls
        calls += 1
        if calls == 2:
            raise RuntimeError("embedding service unavailable")

    result = index_pending_papers(store, embed, batch_size=2, max_papers=10)

    assert result["indexed"] == 3
    assert result["remaining"] == 2
    assert result["errors"] == ["Batch 1: embedding service unavailable"]


def test_max_papers_caps_a_run(store: PaperStore) -> None:
    result = index_pending_papers(store, lambda batch: None, batch_size=100, max_papers=3)
    assert result == {"indexed": 3, "remaining": 2}


def test_openai_embedder_requires_api_key() -> None:
    with patch.dict("os.environ", {}, clear=True):
        with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
            OpenAIEmbedder()


def test_openai_embedder_writes_vectors(tmp_path: Path) -> None:
    item_a = MagicMock(index=0, embedding=[0.1, 0.2])
    item_b = MagicMock(index=1, embedding=[0.3, 0.4])
    mock_client = MagicMock()
    mock_client.embeddings.create.return_value = MagicMock(data=[item_b, item_a])
    output = tmp_path / "vectors.jsonl"

    with patch("indexing.OpenAI", return_value=mock_client), \
         patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"}):
        embedder = OpenAIEmbedder(output_path=output, model="test-model")
        embedder([
            PendingPaper(1, "000001", "First", "One."),
            PendingPaper(2, "000002", "Second", ""),
        ])

    _, kwargs = mock_client.embeddings.create.call_args
    assert kwargs["model"] == "test-model"
    assert kwargs["input"] == ["First. One.", "Second. "]

    lines = [json.loads(line) for line in output.read_text(encoding="utf-8").splitlines()]
    assert [line["id"] for line in lines] == ["000001", "000002"]
    assert lines[0]["values"] == [0.1, 0.2]
    assert lines[1]["metadata"] == {"external_id": "000002", "title": "Second", "paper_id": 2}


def test_openai_embedder_rejects_short_response(tmp_path: Path) -> None:
    mock_client = MagicMock()
    mock_client.embeddings.create.return_value = MagicMock(data=[MagicMock(index=0, embedding=[1.0])])

    with patch("indexing.OpenAI", return_value=mock_client), \
         patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"}):
        embedder = OpenAIEmbedder(output_path=tmp_path / "v.jsonl")
        with pytest.raises(RuntimeError, match="Expected 2 embeddings"):
            embedder([PendingPaper(1, "a", "A", ""), PendingPaper(2, "b", "B", "")])
