"""
Bulk loaders that fill the key-value store.

Each loader is a plain function taking the store handle and one input path,
and owns its own key namespace:

  import_titles            __docId_<id>
  import_postings          <term>
  import_document_lengths  __docLength_<id>_<field>, __avgDocLength_<field>, __docCount
  import_pageranks         __docPR_<id>, __docMaxPR

A record that fails is logged and skipped; only a missing or unreadable input
stops a loader.
"""

import json
import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path

from mixer.common.config import NUM_FIELDS, PROGRESS_INTERVAL
from mixer.common.data_loader import iter_lines
from mixer.common.kvstore import (
    DOC_COUNT_KEY,
    MAX_PAGERANK_KEY,
    KeyValueStore,
    avg_doc_length_key,
    doc_length_key,
    doc_pagerank_key,
    doc_title_key,
)
from mixer.common.log import elapsed_time
from mixer.common.text import count_tokens
from mixer.mapreduce.inverted_index import to_page_record
from mixer.mapreduce.posting import decode_postings, postings_to_json
from mixer.pagerank.pagerank import parse_rank_line

logger = logging.getLogger(__name__)


def _import_lines(
    name: str,
    unit: str,
    lines: Iterable[str],
    process: Callable[[str], None],
    progress_interval: int = PROGRESS_INTERVAL,
) -> int:
    """Feed every non-empty line to process, reporting progress.

    Returns: the number of lines imported successfully
    """
    start_at = datetime.now()
    logger.info("%s started at %s", name, start_at.time())

    imported = 0
    for line in lines:
        if not line.strip():
            continue
        try:
            process(line)
        except Exception:
            logger.exception("%s failed to import %r", name, line[:200])
            continue

        imported += 1
        if imported % progress_interval == 0:
            logger.info(
                "%s has imported %d %s. Elapsed time: %s",
                name, imported, unit, elapsed_time(start_at, datetime.now()),
            )

    logger.info(
        "Summary: %s has imported %d %s. Elapsed time: %s",
        name, imported, unit, elapsed_time(start_at, datetime.now()),
    )
    return imported


# ---------------------------------------------------------------------------
# Titles: index.json -> __docId_<id>
# ---------------------------------------------------------------------------


def import_titles(store: KeyValueStore, index_path: str | Path) -> int:
    def process(line: str) -> None:
        record = json.loads(line)
        store.put(doc_title_key(int(record["id"])), record["title"])

    count = _import_lines("TitleImporter", "pages", iter_lines(index_path), process)
    store.commit()
    return count


# ---------------------------------------------------------------------------
# Postings: index job output -> <term>
# ---------------------------------------------------------------------------


def parse_index_line(line: str) -> tuple[str, str]:
    """Split "term \\t postings" and convert the postings to their JSON form."""
    term, sep, compact = line.partition("\t")
    if not sep or not term:
        raise ValueError(f"index line has no term/postings separator: {line[:200]!r}")
    return term, postings_to_json(decode_postings(compact))


def import_postings(store: KeyValueStore, postings_path: str | Path) -> int:
    def process(line: str) -> None:
        term, value = parse_index_line(line)
        store.put(term, value)

    count = _import_lines("PostingImporter", "keywords", iter_lines(postings_path), process)
    store.commit()
    return count


# ---------------------------------------------------------------------------
# Document lengths: data.json -> __docLength_*, __avgDocLength_*, __docCount
# ---------------------------------------------------------------------------


def import_document_lengths(store: KeyValueStore, data_path: str | Path) -> int:
    # 0 - title, 1 - content, 2 - categories
    total_length = [0] * NUM_FIELDS

    def process(line: str) -> None:
        page = to_page_record(json.loads(line))
        lengths = [count_tokens(text) for text in (page.title, page.content, page.categories)]
        for field_id, length in enumerate(lengths):
            store.put(doc_length_key(page.doc_id, field_id), length)
        # Totals only move once the whole record is in
        for field_id, length in enumerate(lengths):
            total_length[field_id] += length

    count = _import_lines("DocumentLengthImporter", "pages", iter_lines(data_path), process)

    for field_id, total in enumerate(total_length):
        average = total / count if count else 0.0
        store.put(avg_doc_length_key(field_id), average)
        logger.info(
            "Summary: Average document length for field %d is %s (total: %d)", field_id, average, total
        )

    store.put(DOC_COUNT_KEY, count)
    store.commit()
    return count


# ---------------------------------------------------------------------------
# PageRank: PageRank job output -> __docPR_<id>, __docMaxPR
# ---------------------------------------------------------------------------


def import_pageranks(store: KeyValueStore, pagerank_path: str | Path) -> int:
    max_pagerank = 0.0

    def process(line: str) -> None:
        nonlocal max_pagerank
        record = parse_rank_line(line)
        store.put(doc_pagerank_key(record.doc_id), record.rank)
        max_pagerank = max(max_pagerank, record.rank)

    count = _import_lines("PageRankImporter", "pages", iter_lines(pagerank_path), process)

    store.put(MAX_PAGERANK_KEY, max_pagerank)
    store.commit()
    logger.info("Summary: The max PageRank is %s", max_pagerank)
    return count
