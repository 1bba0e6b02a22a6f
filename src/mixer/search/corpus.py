"""
Read access to the crawled corpus for result display.

The crawler keeps pages in a SQLite ``pages`` table; the searcher only needs
the display columns of the handful of pages on the requested result page.
"""

import logging
import sqlite3
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mixer.common.config import BATCH_READ_COUNT, CATEGORY_URL_PREFIX, PAGE_URL_PREFIX

logger = logging.getLogger(__name__)

CATEGORY_SEPARATOR = "|"


@dataclass(frozen=True)
class PageRow:
    title: str
    content: str
    categories: list[str]
    last_modify: str


@dataclass(frozen=True)
class RelatedPage:
    """One result entry, ready to be rendered."""

    title: str
    raw_title: str
    snippet: str
    categories: list[str]
    raw_categories: list[str]
    last_modify: str
    score: str

    def to_json(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "url": PAGE_URL_PREFIX + self.raw_title.replace(" ", "_"),
            "snippet": self.snippet,
            "categories": {
                "html": self.categories,
                "href": [CATEGORY_URL_PREFIX + c.replace(" ", "_") for c in self.raw_categories],
            },
            "lastModify": self.last_modify,
            "score": self.score,
        }


def build_batch_select_sql(num_titles: int) -> str:
    placeholders = ", ".join("?" for _ in range(num_titles))
    return f"SELECT title, content, categories, lastModify FROM pages WHERE title IN ({placeholders})"


class CorpusStore:
    """Read-only view of the ``pages`` table, one connection per thread."""

    def __init__(self, db_path: str | Path, batch_size: int = BATCH_READ_COUNT):
        self.db_path = Path(db_path)
        if not self.db_path.is_file():
            raise FileNotFoundError(f"corpus database does not exist: {self.db_path}")
        self.batch_size = batch_size
        self._local = threading.local()
        self._lock = threading.Lock()
        self._connections: list[sqlite3.Connection] = []

    def _connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "connection", None)
        if conn is None:
            conn = sqlite3.connect(f"file:{self.db_path}?mode=ro", uri=True, check_same_thread=False)
            self._local.connection = conn
            with self._lock:
                self._connections.append(conn)
        return conn

    def fetch_pages(self, titles: Sequence[str]) -> dict[str, PageRow]:
        """Fetch the display columns of the given titles, in batches.

        A failing batch is logged and its pages are left out.
        """
        pages: dict[str, PageRow] = {}
        for start in range(0, len(titles), self.batch_size):
            batch = list(titles[start:start + self.batch_size])
            try:
                rows = self._connection().execute(build_batch_select_sql(len(batch)), batch).fetchall()
            except sqlite3.Error as e:
                logger.error("Failed to fetch %d pages from the corpus: %s", len(batch), e)
                continue

            for title, content, categories, last_modify in rows:
                pages[title] = PageRow(
                    title=title,
                    content=content or "",
                    categories=[c for c in (categories or "").split(CATEGORY_SEPARATOR) if c],
                    last_modify=str(last_modify or ""),
                )
        return pages

    def close(self) -> None:
        with self._lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
