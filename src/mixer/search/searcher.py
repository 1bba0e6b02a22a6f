"""
Searchers: turn a keyword (and an optional category filter) into a ranked
list of titles.

``Searcher`` is the capability every backend offers; ``MixerSearcher`` is the
backend reading the key-value store filled by the importer. Paging,
highlighting and page fetching live in the service, shared by all backends.
"""

import logging
import math
import sqlite3
from collections.abc import Iterable
from typing import NamedTuple, Protocol

from mixer.common.config import (
    BM25_NORMALIZED_MAX,
    BM25_WEIGHT,
    CATEGORY_BOOST,
    CATEGORY_FIELD,
    CONTENT_BOOST,
    CONTENT_FIELD,
    MAX_RESULTS,
    NUM_FIELDS,
    PAGERANK_NORMALIZED_MAX,
    PAGERANK_WEIGHT,
    TITLE_BOOST,
    TITLE_FIELD,
    ConfigurationError,
    FieldBoost,
)
from mixer.common.kvstore import (
    DOC_COUNT_KEY,
    MAX_PAGERANK_KEY,
    KeyValueStore,
    avg_doc_length_key,
    doc_length_key,
    doc_pagerank_key,
    doc_title_key,
)
from mixer.common.text import analyze_query, query_frequency, split_keyword
from mixer.mapreduce.posting import postings_from_json
from mixer.search.scoring import (
    InvertedIndex,
    MixerScore,
    calculate_field_score,
    combine_field_scores,
    normalize,
    normalize_scores,
    rank_scores,
    score_terms,
)

logger = logging.getLogger(__name__)


class RankedTitle(NamedTuple):
    doc_id: int
    title: str
    score: str


class SearchResult(NamedTuple):
    hits: int
    ranked: list[RankedTitle]


class Searcher(Protocol):
    def search(self, keyword: str, category: str) -> SearchResult:
        """Rank the documents matching keyword, filtered by category when non-empty."""
        ...


class MixerSearcher:
    """BM25 with proximity boosts, optionally mixed with PageRank."""

    def __init__(self, store: KeyValueStore, with_pagerank: bool = False, max_results: int = MAX_RESULTS):
        self.store = store
        self.with_pagerank = with_pagerank
        self.max_results = max_results

        try:
            self.num_docs = float(self._require(DOC_COUNT_KEY))
            self.max_pagerank = float(self._require(MAX_PAGERANK_KEY))
            self.avg_doc_length = [float(self._require(avg_doc_length_key(f))) for f in range(NUM_FIELDS)]
        except ValueError as e:
            raise ConfigurationError(f"corrupt corpus statistics in {store.db_path}: {e}") from e

    def _require(self, key: str) -> str:
        value = self.store.get(key)
        if value is None:
            raise ConfigurationError(f"key-value store {self.store.db_path} has no {key}, was it imported?")
        return value

    def _get(self, key: str) -> str | None:
        """Store lookup where a storage failure counts as a miss."""
        try:
            return self.store.get(key)
        except sqlite3.Error as e:
            logger.error("Key-value store lookup of %r failed: %s", key, e)
            return None

    def doc_length(self, doc_id: int, field_id: int) -> int | None:
        value = self._get(doc_length_key(doc_id, field_id))
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            logger.warning("Ignoring malformed length %r of doc %d field %d", value, doc_id, field_id)
            return None

    def fetch_inverted_index(self, terms: Iterable[str]) -> InvertedIndex:
        """Load the postings of each term; missing or malformed ones are left out."""
        index: InvertedIndex = {}
        for term in terms:
            value = self._get(term)
            if value is None:
                continue
            try:
                index[term] = postings_from_json(value)
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("Ignoring malformed postings of %r: %s", term, e)
        return index

    def score_field(
        self,
        field_id: int,
        boost: FieldBoost,
        query_terms: list[str],
        query_freq: dict[str, int],
        query_length: int,
        inverted_index: InvertedIndex,
    ) -> dict[int, float]:
        term_scores = score_terms(
            field_id, query_freq, inverted_index, self.doc_length, self.avg_doc_length[field_id], self.num_docs
        )
        return calculate_field_score(
            field_id, term_scores, inverted_index, query_terms, query_freq, query_length, boost, self.doc_length
        )

    def combine_pagerank(self, doc_id: int, bm25_score: float) -> MixerScore:
        if not self.with_pagerank:
            return MixerScore(bm25_score, bm25_score)

        # Pages outside the link graph keep the initial PageRank
        pagerank = 1.0 / self.num_docs if self.num_docs > 0 else 0.0
        raw = self._get(doc_pagerank_key(doc_id))
        if raw is not None:
            try:
                pagerank = float(raw)
            except ValueError:
                logger.warning("Ignoring malformed PageRank %r of doc %d", raw, doc_id)

        normalized = normalize(pagerank, 0.0, self.max_pagerank, 0.0, PAGERANK_NORMALIZED_MAX)
        if not math.isfinite(normalized):
            normalized = 0.0
        total = bm25_score * BM25_WEIGHT + normalized * PAGERANK_WEIGHT
        return MixerScore(total, bm25_score, normalized)

    def score_keyword(self, keyword: str) -> dict[int, float]:
        """Title and content scores, for documents matching in both."""
        query_terms = analyze_query(keyword)
        query_freq = query_frequency(query_terms)
        inverted_index = self.fetch_inverted_index(query_freq)
        if not inverted_index:
            return {}

        query_length = len(split_keyword(keyword))
        title_score = self.score_field(
            TITLE_FIELD, TITLE_BOOST, query_terms, query_freq, query_length, inverted_index
        )
        content_score = self.score_field(
            CONTENT_FIELD, CONTENT_BOOST, query_terms, query_freq, query_length, inverted_index
        )
        return combine_field_scores(title_score, content_score, must_occur_in_both=True)

    def score_category(self, category: str) -> dict[int, float]:
        query_terms = analyze_query(category)
        query_freq = query_frequency(query_terms)
        inverted_index = self.fetch_inverted_index(query_freq)
        if not inverted_index:
            return {}

        return self.score_field(
            CATEGORY_FIELD, CATEGORY_BOOST, query_terms, query_freq,
            len(split_keyword(category)), inverted_index,
        )

    def search(self, keyword: str, category: str = "") -> SearchResult:
        final_score = self.score_keyword(keyword)

        if final_score and category:
            final_score = combine_field_scores(final_score, self.score_category(category), must_occur_in_both=True)

        if not final_score:
            return SearchResult(0, [])

        if self.with_pagerank:
            final_score = normalize_scores(final_score, 0.0, BM25_NORMALIZED_MAX)

        ranked = rank_scores(
            ((doc_id, self.combine_pagerank(doc_id, score)) for doc_id, score in final_score.items()),
            self.max_results,
        )

        titles = []
        for doc_id, score in ranked:
            title = self._get(doc_title_key(doc_id))
            if title is None:
                logger.warning("Document %d has no title, dropped from results", doc_id)
                continue
            titles.append(RankedTitle(doc_id, title, str(score)))

        return SearchResult(len(final_score), titles)
