"""SQLite-backed store for mirrored papers, authors and keywords."""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from models import AuthorProfile, AuthorRef, ParsedPaper

ARCHIVE_DB_PATH = os.getenv("ARCHIVE_DB_PATH", "archive.db")

LOGGER = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS papers (
    paper_id INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id TEXT NOT NULL UNIQUE,
    paper_title TEXT NOT NULL,
    paper_year TEXT NOT NULL DEFAULT '',
    paper_month TEXT NOT NULL DEFAULT '',
    published_in TEXT NOT NULL DEFAULT '',
    keywords_raw TEXT NOT NULL DEFAULT '',
    paper_reference TEXT NOT NULL DEFAULT '',
    abstract TEXT NOT NULL DEFAULT '',
    downloads INTEGER NOT NULL DEFAULT 0 CHECK (downloads >= 0),
    download_url TEXT NOT NULL DEFAULT '',
    paper_url TEXT NOT NULL,
    indexed_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS authors (
    author_id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL UNIQUE,
    first_name TEXT NOT NULL DEFAULT '',
    last_name TEXT NOT NULL DEFAULT '',
    email TEXT NOT NULL DEFAULT '',
    affiliation TEXT NOT NULL DEFAULT '',
    website TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS keywords (
    keyword_id INTEGER PRIMARY KEY AUTOINCREMENT,
    keyword TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS authors_papers (
    author_id INTEGER NOT NULL REFERENCES authors(author_id),
    paper_id INTEGER NOT NULL REFERENCES papers(paper_id),
    author_position INTEGER NOT NULL CHECK (author_position >= 1),
    PRIMARY KEY (author_id, paper_id)
);

CREATE TABLE IF NOT EXISTS keywords_papers (
    keyword_id INTEGER NOT NULL REFERENCES keywords(keyword_id),
    paper_id INTEGER NOT NULL REFERENCES papers(paper_id),
    PRIMARY KEY (keyword_id, paper_id)
);
"""


class StoreError(RuntimeError):
    """A store statement failed."""


def split_paper_date(date: str) -> tuple[str, str]:
    """``"January 2024"`` -> ``("January", "2024")``; missing parts are ``""``."""
    parts = date.split(" ")
    month = parts[0] if parts else ""
    year = parts[1] if len(parts) > 1 else ""
    return month, year


def _now() -> str:
    return datetime.now(UTC).isoformat()


class PaperStore:
    """One SQLite connection shared by worker threads.

    Every public method is a single statement executed under a lock and
    committed immediately; multi-statement work (a paper plus its relations)
    is not transactional as a unit.
    """

    def __init__(self, db_path: str | Path = ARCHIVE_DB_PATH) -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        with self._conn:
            self._conn.executescript(SCHEMA)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> PaperStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                with self._conn:
                    return self._conn.execute(sql, params)
            except sqlite3.Error as exc:
                raise StoreError(f"{exc} (sql={sql.split()[0]} params={list(params)!r})") from exc

    def _fetchone(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchone()
            except sqlite3.Error as exc:
                raise StoreError(str(exc)) from exc

    def _fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise StoreError(str(exc)) from exc

    # -- papers -------------------------------------------------------------

    def find_by_external_id(self, external_id: str) -> sqlite3.Row | None:
        return self._fetchone("SELECT * FROM papers WHERE external_id = ?", (external_id,))

    def insert_paper(self, paper: ParsedPaper) -> int:
        """Insert a paper row and return its generated ``paper_id``."""
        month, year = split_paper_date(paper.date)
        now = _now()
        cursor = self._execute(
            """
            INSERT INTO papers (
                external_id, paper_title, paper_year, paper_month, published_in,
                keywords_raw, paper_reference, abstract, downloads, download_url,
                paper_url, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                paper.external_id,
                paper.title,
                year,
                month,
                paper.published_in,
                paper.keywords_raw,
                f"lingbuzz/{paper.external_id}",
                paper.abstract,
                paper.download_count,
                paper.download_url,
                paper.detail_url,
                now,
                now,
            ),
        )
        return int(cursor.lastrowid)

    def update_paper(self, paper_id: int, paper: ParsedPaper) -> None:
        """Overwrite the fields a new archive version may change.

        The paper is also queued for re-indexing since its text may differ.
        """
        month, year = split_paper_date(paper.date)
        self._execute(
            """
            UPDATE papers SET
                paper_title = ?, paper_year = ?, paper_month = ?, published_in = ?,
                keywords_raw = ?, abstract = ?, downloads = ?,
                download_url = CASE WHEN ? = '' THEN download_url ELSE ? END,
                indexed_at = NULL, updated_at = ?
            WHERE paper_id = ?
            """,
            (
                paper.title,
                year,
                month,
                paper.published_in,
                paper.keywords_raw,
                paper.abstract,
                paper.download_count,
                paper.download_url,
                paper.download_url,
                _now(),
                paper_id,
            ),
        )

    def count_papers(self) -> int:
        row = self._fetchone("SELECT COUNT(*) AS n FROM papers")
        return int(row["n"]) if row is not None else 0

    # -- keywords -----------------------------------------------------------

    def upsert_keyword(self, keyword: str) -> None:
        self._execute("INSERT INTO keywords (keyword) VALUES (?) ON CONFLICT(keyword) DO NOTHING", (keyword,))

    def find_keyword_id(self, keyword: str) -> int | None:
        row = self._fetchone("SELECT keyword_id FROM keywords WHERE keyword = ?", (keyword,))
        return int(row["keyword_id"]) if row is not None else None

    def insert_keyword_paper_relation(self, keyword_id: int, paper_id: int) -> None:
        self._execute(
            "INSERT INTO keywords_papers (keyword_id, paper_id) VALUES (?, ?)",
            (keyword_id, paper_id),
        )

    def keyword_ids_for_paper(self, paper_id: int) -> set[int]:
        rows = self._fetchall("SELECT keyword_id FROM keywords_papers WHERE paper_id = ?", (paper_id,))
        return {int(row["keyword_id"]) for row in rows}

    # -- authors ------------------------------------------------------------

    def find_author_by_username(self, username: str) -> sqlite3.Row | None:
        return self._fetchone("SELECT * FROM authors WHERE username = ?", (username,))

    def insert_author(self, author: AuthorRef, profile: AuthorProfile) -> int:
        """Create an author, or return the existing id if the username raced in."""
        self._execute(
            """
            INSERT INTO authors (username, first_name, last_name, email, affiliation, website, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(username) DO NOTHING
            """,
            (
                author.username,
                author.first_name,
                author.last_name,
                profile.email,
                profile.affiliation,
                profile.website,
                _now(),
            ),
        )
        row = self.find_author_by_username(author.username)
        if row is None:
            raise StoreError(f"Author {author.username!r} missing after insert")
        return int(row["author_id"])

    def insert_author_paper_relation(self, author_id: int, paper_id: int, position: int) -> None:
        self._execute(
            "INSERT INTO authors_papers (author_id, paper_id, author_position) VALUES (?, ?, ?)",
            (author_id, paper_id, position),
        )

    # -- indexing -----------------------------------------------------------

    def select_unindexed_papers(self, limit: int) -> list[sqlite3.Row]:
        return self._fetchall(
            """
            SELECT paper_id, external_id, paper_title, abstract
            FROM papers WHERE indexed_at IS NULL
            ORDER BY paper_id LIMIT ?
            """,
            (limit,),
        )

    def count_unindexed_papers(self) -> int:
        row = self._fetchone("SELECT COUNT(*) AS n FROM papers WHERE indexed_at IS NULL")
        return int(row["n"]) if row is not None else 0

    def mark_papers_indexed(self, paper_ids: Iterable[int]) -> None:
        ids = list(paper_ids)
        if not ids:
            return
        placeholders = ", ".join("?" for _ in ids)
        self._execute(
            f"UPDATE papers SET indexed_at = ? WHERE paper_id IN ({placeholders})",
            [_now(), *ids],
        )
