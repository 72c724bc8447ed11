from pathlib import Path

import pytest

from models import AuthorProfile, AuthorRef, ParsedPaper
from store import PaperStore, StoreError, split_paper_date


def _paper(external_id: str = "007001", **overrides) -> ParsedPaper:
    fields = dict(
        external_id=external_id,
        title="A Paper",
        date="January 2024",
        published_in="Glossa",
        keywords_raw="syntax, tone",
        keywords=["syntax", "tone"],
        abstract="Abstract.",
        download_count=3,
        download_url=f"https://ling.auf.net/lingbuzz/{external_id}/current.pdf",
        detail_url=f"https://ling.auf.net/lingbuzz/{external_id}",
    )
    fields.update(overrides)
    return ParsedPaper(**fields)


@pytest.fixture
def store(tmp_path: Path):
    with PaperStore(tmp_path / "archive.db") as s:
        yield s


def test_insert_and_find_paper(store: PaperStore) -> None:
    paper_id = store.insert_paper(_paper())

    row = store.find_by_external_id("007001")
    assert row is not None
    assert row["paper_id"] == paper_id
    assert row["paper_title"] == "A Paper"
    assert row["paper_month"] == "January"
    assert row["paper_year"] == "2024"
    assert row["paper_reference"] == "lingbuzz/007001"
    assert row["downloads"] == 3
    assert row["indexed_at"] is None
    assert store.find_by_external_id("999999") is None


def test_external_id_is_unique(store: PaperStore) -> None:
    store.insert_paper(_paper())
    with pytest.raises(StoreError):
        store.insert_paper(_paper())
    assert store.count_papers() == 1


def test_update_paper_overwrites_mutable_fields(store: PaperStore) -> None:
    paper_id = store.insert_paper(_paper())
    store.mark_papers_indexed([paper_id])

    store.update_paper(paper_id, _paper(title="Revised", download_count=10, download_url=""))

    row = store.find_by_external_id("007001")
    assert row["paper_title"] == "Revised"
    assert row["downloads"] == 10
    assert row["download_url"] == "https://ling.auf.net/lingbuzz/007001/current.pdf"
    assert row["indexed_at"] is None


def test_upsert_keyword_is_idempotent(store: PaperStore) -> None:
    store.upsert_keyword("syntax")
    first = store.find_keyword_id("syntax")
    store.upsert_keyword("syntax")

    assert first is not None
    assert store.find_keyword_id("syntax") == first
    assert store.find_keyword_id("tone") is None


def test_keyword_relation_identity(store: PaperStore) -> None:
    paper_id = store.insert_paper(_paper())
    store.upsert_keyword("syntax")
    keyword_id = store.find_keyword_id("syntax")

    store.insert_keyword_paper_relation(keyword_id, paper_id)
    with pytest.raises(StoreError):
        store.insert_keyword_paper_relation(keyword_id, paper_id)
    assert store.keyword_ids_for_paper(paper_id) == {keyword_id}


def test_insert_author_returns_existing_id_for_same_username(store: PaperStore) -> None:
    author = AuthorRef("John", "Doe", "https://ling.auf.net/_person/jdoe", "jdoe")
    first = store.insert_author(author, AuthorProfile(email="j@example.edu"))
    second = store.insert_author(author, AuthorProfile(email="other@example.edu"))

    assert first == second
    assert store.find_author_by_username("jdoe")["email"] == "j@example.edu"


def test_author_relation_requires_positive_position(store: PaperStore) -> None:
    paper_id = store.insert_paper(_paper())
    author_id = store.insert_author(AuthorRef("J", "D", "", "jd"), AuthorProfile())

    with pytest.raises(StoreError):
        store.insert_author_paper_relation(author_id, paper_id, 0)
    store.insert_author_paper_relation(author_id, paper_id, 1)


def test_unindexed_papers_and_marking(store: PaperStore) -> None:
    ids = [store.insert_paper(_paper(f"00700{n}")) for n in range(3)]

    pending = store.select_unindexed_papers(limit=2)
    assert [row["paper_id"] for row in pending] == ids[:2]

    store.mark_papers_indexed(ids[:2])
    assert [row["paper_id"] for row in store.select_unindexed_papers(limit=10)] == ids[2:]
    assert store.count_unindexed_papers() == 1
    store.mark_papers_indexed([])


@pytest.mark.parametrize("date, expected", [
    ("January 2024", ("January", "2024")),
    ("", ("", "")),
    ("2024", ("2024", "")),
])
def test_split_paper_date(date: str, expected: tuple[str, str]) -> None:
    assert split_paper_date(date) == expected
