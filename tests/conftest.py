"""
Pytest configuration and shared fixtures for the Mixer tests.
"""

import json
import os
import sqlite3
from collections import defaultdict
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, NamedTuple

import pytest
from pyspark.sql import SparkSession

SRC_DIR = Path(__file__).parent.parent / "src"

# Spark's Python workers import the job functions by module name
os.environ["PYTHONPATH"] = os.pathsep.join(
    p for p in (str(SRC_DIR), os.environ.get("PYTHONPATH", "")) if p
)

from mixer.common.kvstore import KeyValueStore  # noqa: E402
from mixer.importer.importer import run_importers  # noqa: E402
from mixer.mapreduce.inverted_index import format_index_line, map_document, reduce_postings  # noqa: E402
from mixer.pagerank.pagerank import RankRecord, format_rank_line  # noqa: E402


@pytest.fixture(scope="session")
def spark() -> SparkSession:
    """
    Create a SparkSession for testing.

    Uses session scope to reuse the same Spark context across all tests,
    which significantly speeds up test execution.
    """
    spark = (
        SparkSession.builder
        .appName("pytest-mixer")
        .master("local[2]")  # Use 2 cores for testing
        .config("spark.sql.shuffle.partitions", "2")  # Reduce partitions for faster tests
        .config("spark.default.parallelism", "2")
        .config("spark.ui.enabled", "false")  # Disable Spark UI for tests
        .config("spark.driver.memory", "1g")
        .getOrCreate()
    )

    # Set log level to reduce noise during tests
    spark.sparkContext.setLogLevel("WARN")

    yield spark

    spark.stop()


@pytest.fixture(scope="session")
def sc(spark: SparkSession):
    """SparkContext of the session fixture, for the RDD-based jobs."""
    return spark.sparkContext


# ---------------------------------------------------------------------------
# Corpus helpers
# ---------------------------------------------------------------------------


def page(doc_id: int, title: str, content: str, categories: Iterable[str] = ()) -> dict[str, Any]:
    return {"id": doc_id, "title": title, "content": content, "categories": list(categories)}


def write_json_lines(path: Path, records: Iterable[dict[str, Any]], trailing_empty_line: bool = True) -> Path:
    """Write records the way the corpus export does, ending with an empty line."""
    lines = [json.dumps(r) for r in records]
    text = "\n".join(lines) + "\n"
    if trailing_empty_line:
        text += "\n"
    path.write_text(text, encoding="utf-8")
    return path


def write_corpus_db(path: Path, pages: Iterable[dict[str, Any]]) -> Path:
    """Create the crawler's pages table for the given pages."""
    with sqlite3.connect(path) as conn:
        conn.execute(
            "CREATE TABLE pages (title TEXT PRIMARY KEY, content TEXT, categories TEXT, lastModify TEXT)"
        )
        conn.executemany(
            "INSERT INTO pages (title, content, categories, lastModify) VALUES (?, ?, ?, ?)",
            [(p["title"], p["content"], "|".join(p["categories"]), "2018-03-01T12:00:00Z") for p in pages],
        )
    return path


def build_index_file(path: Path, data_lines: Iterable[str]) -> Path:
    """Run the index map and reduce functions locally, without Spark."""
    grouped = defaultdict(list)
    for line in data_lines:
        for term, posting in map_document(line):
            grouped[term].append(posting)

    path.write_text(
        "".join(format_index_line((term, reduce_postings(postings))) + "\n" for term, postings in grouped.items()),
        encoding="utf-8",
    )
    return path


class SearchEnv(NamedTuple):
    store_path: Path
    corpus_path: Path
    json_dir: Path


@pytest.fixture
def make_search_env(tmp_path: Path) -> Callable[..., SearchEnv]:
    """Build a loaded key-value store and corpus database from page dicts."""

    def _make(pages: list[dict[str, Any]], ranks: dict[int, float] | None = None) -> SearchEnv:
        json_dir = tmp_path / "json"
        json_dir.mkdir()
        write_json_lines(json_dir / "data.json", pages)
        write_json_lines(json_dir / "index.json", ({"id": p["id"], "title": p["title"]} for p in pages))

        data_lines = (json_dir / "data.json").read_text(encoding="utf-8").splitlines()
        index_path = build_index_file(tmp_path / "index.txt", data_lines)

        if ranks is None:
            ranks = {p["id"]: 1.0 / len(pages) for p in pages}
        pagerank_path = tmp_path / "pagerank.txt"
        pagerank_path.write_text(
            "".join(format_rank_line(RankRecord(doc_id, rank, ())) + "\n" for doc_id, rank in ranks.items()),
            encoding="utf-8",
        )

        store_path = tmp_path / "mixer.db"
        with KeyValueStore(store_path) as store:
            summary = run_importers(store, json_dir, index_path, pagerank_path)
        assert summary.ok, summary.failures

        corpus_path = write_corpus_db(tmp_path / "corpus.db", pages)
        return SearchEnv(store_path, corpus_path, json_dir)

    return _make
