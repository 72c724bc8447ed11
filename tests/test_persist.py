import asyncio
import sqlite3
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from fetcher import FetchExhausted
from models import AuthorProfile, AuthorRef, ParsedPaper
from persist import ensure_author, persist_paper, update_paper_version
from store import PaperStore, StoreError

AUTHORS = {
    1: AuthorRef("Alice", "Smith", "https://ling.auf.net/_person/asmith", "asmith"),
    2: AuthorRef("Bob", "Jones", "https://ling.auf.net/_person/bjones", "bjones"),
}


def _paper(keywords: list[str], **overrides) -> ParsedPaper:
    fields = dict(
        external_id="007001",
        title="A Paper",
        date="March 2025",
        published_in="",
        keywords_raw=", ".join(keywords),
        keywords=keywords,
        abstract="Abstract.",
        download_count=0,
        download_url="",
        detail_url="https://ling.auf.net/lingbuzz/007001",
    )
    fields.update(overrides)
    return ParsedPaper(**fields)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "archive.db"


@pytest.fixture
def store(db_path: Path):
    with PaperStore(db_path) as s:
        yield s


def _count(db_path: Path, table: str) -> int:
    with sqlite3.connect(db_path) as conn:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


def test_persist_paper_writes_paper_keywords_and_authors(store: PaperStore, db_path: Path) -> None:
    fetch_profile = AsyncMock(return_value=AuthorProfile(email="a@example.edu"))

    paper_id = asyncio.run(
        persist_paper(store, _paper(["syntax", "tone", "syntax", ""]), AUTHORS, fetch_profile)
    )

    assert store.find_by_external_id("007001")["paper_id"] == paper_id
    assert _count(db_path, "papers") == 1
    assert _count(db_path, "keywords") == 2
    assert _count(db_path, "keywords_papers") == 2
    with sqlite3.connect(db_path) as conn:
        positions = conn.execute(
            "SELECT a.username, ap.author_position FROM authors_papers ap "
            "JOIN authors a USING (author_id) ORDER BY ap.author_position"
        ).fetchall()
    assert positions == [("asmith", 1), ("bjones", 2)]
    assert fetch_profile.await_count == 2
    assert store.find_author_by_username("asmith")["email"] == "a@example.edu"


def test_failed_keyword_relation_does_not_block_paper(
    store: PaperStore, db_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    original = store.insert_keyword_paper_relation

    def flaky(keyword_id: int, paper_id: int) -> None:
        if keyword_id == store.find_keyword_id("tone"):
            raise StoreError("simulated relation failure")
        original(keyword_id, paper_id)

    monkeypatch.setattr(store, "insert_keyword_paper_relation", flaky)

    asyncio.run(persist_paper(store, _paper(["syntax", "tone", "stress"]), AUTHORS, fetch_profile=None))

    assert _count(db_path, "papers") == 1
    assert _count(db_path, "keywords") == 3
    assert _count(db_path, "keywords_papers") == 2
    assert _count(db_path, "authors_papers") == 2


def test_failed_author_relation_is_isolated(
    store: PaperStore, db_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    original = store.insert_author_paper_relation

    def flaky(author_id: int, paper_id: int, position: int) -> None:
        if position == 1:
            raise StoreError("simulated relation failure")
        original(author_id, paper_id, position)

    monkeypatch.setattr(store, "insert_author_paper_relation", flaky)

    paper_id = asyncio.run(persist_paper(store, _paper(["syntax"]), AUTHORS, fetch_profile=None))

    assert paper_id > 0
    assert _count(db_path, "authors") == 2
    assert _count(db_path, "authors_papers") == 1


def test_paper_insert_failure_is_fatal(store: PaperStore) -> None:
    asyncio.run(persist_paper(store, _paper([]), {}, fetch_profile=None))
    with pytest.raises(StoreError):
        asyncio.run(persist_paper(store, _paper([]), {}, fetch_profile=None))


def test_ensure_author_reuses_existing_without_fetching(store: PaperStore) -> None:
    fetch_profile = AsyncMock(return_value=AuthorProfile())
    first = asyncio.run(ensure_author(store, AUTHORS[1], fetch_profile))
    second = asyncio.run(ensure_author(store, AUTHORS[1], fetch_profile))

    assert first == second
    assert fetch_profile.await_count == 1


def test_ensure_author_tolerates_profile_fetch_failure(store: PaperStore) -> None:
    fetch_profile = AsyncMock(side_effect=FetchExhausted("u", 4, RuntimeError("down")))

    author_id = asyncio.run(ensure_author(store, AUTHORS[2], fetch_profile))

    row = store.find_author_by_username("bjones")
    assert row["author_id"] == author_id
    assert (row["email"], row["affiliation"], row["website"]) == ("", "", "")
    assert row["first_name"] == "Bob"


def test_update_version_of_unknown_paper_persists_it(store: PaperStore, db_path: Path) -> None:
    asyncio.run(update_paper_version(store, _paper(["syntax"]), AUTHORS, fetch_profile=None))

    assert _count(db_path, "papers") == 1
    assert _count(db_path, "authors_papers") == 2


def test_update_version_of_known_paper_updates_in_place(store: PaperStore, db_path: Path) -> None:
    paper_id = asyncio.run(persist_paper(store, _paper(["syntax"]), AUTHORS, fetch_profile=None))

    updated_id = asyncio.run(
        update_paper_version(
            store,
            _paper(["syntax", "tone"], title="Revised", download_count=7),
            AUTHORS,
            fetch_profile=None,
        )
    )

    assert updated_id == paper_id
    row = store.find_by_external_id("007001")
    assert row["paper_title"] == "Revised"
    assert row["downloads"] == 7
    assert _count(db_path, "papers") == 1
    assert _count(db_path, "keywords_papers") == 2
    assert _count(db_path, "authors_papers") == 2
