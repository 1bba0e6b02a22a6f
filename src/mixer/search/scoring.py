"""
Relevance scoring: BM25 per term, match-shape boosts per field, PageRank mix.

All functions here are pure; document lengths are looked up through a
callable so the searcher decides where they come from.
"""

import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from mixer.common.config import BM25_B, BM25_K1, BM25_K2, FieldBoost
from mixer.mapreduce.posting import Posting

# (docId, fieldId) -> token length, None when unknown
DocLength = Callable[[int, int], int | None]

# term -> docId -> Posting
InvertedIndex = dict[str, dict[int, Posting]]


def _ln(x: float) -> float:
    """Natural log that follows IEEE semantics instead of raising."""
    if x > 0:
        return math.log(x)
    if x == 0:
        return -math.inf
    return math.nan


def bm25(
    term_freq: float,
    query_freq: float,
    doc_freq: float,
    doc_length: float,
    avg_doc_length: float,
    num_docs: float,
    k1: float = BM25_K1,
    k2: float = BM25_K2,
    b: float = BM25_B,
) -> float:
    """BM25 of a single term in a single field.

    May return a non-finite value (e.g. zero term frequency); callers drop those.
    """
    if avg_doc_length <= 0:
        return math.nan

    k = k1 * ((1 - b) + b * doc_length / avg_doc_length)
    idf = _ln((num_docs - doc_freq + 0.5) / (doc_freq + 0.5))
    tf_part = _ln((k1 + 1) * term_freq / (k + term_freq)) if k + term_freq != 0 else math.nan
    qf_part = _ln((k2 + 1) * query_freq / (k2 + query_freq))
    return idf + tf_part + qf_part


def score_term(
    field_id: int,
    query_freq: int,
    term_index: dict[int, Posting],
    doc_length: DocLength,
    avg_doc_length: float,
    num_docs: float,
) -> dict[int, float]:
    """Score one term in one field for every document of its postings.

    Returns: docId -> BM25, only for finite scores
    """
    doc_freq = sum(1 for posting in term_index.values() if posting.frequency[field_id] > 0)

    scores: dict[int, float] = {}
    for doc_id, posting in term_index.items():
        term_freq = posting.frequency[field_id]
        if term_freq == 0:
            continue
        length = doc_length(doc_id, field_id)
        if length is None:
            continue

        score = bm25(term_freq, query_freq, doc_freq, length, avg_doc_length, num_docs)
        if math.isfinite(score):
            scores[doc_id] = score
    return scores


def score_terms(
    field_id: int,
    query_freq: dict[str, int],
    inverted_index: InvertedIndex,
    doc_length: DocLength,
    avg_doc_length: float,
    num_docs: float,
) -> dict[int, dict[str, float]]:
    """Score every query term in one field.

    Returns: docId -> term -> BM25
    """
    term_scores: dict[int, dict[str, float]] = {}
    for term, term_index in inverted_index.items():
        scores = score_term(field_id, query_freq[term], term_index, doc_length, avg_doc_length, num_docs)
        for doc_id, score in scores.items():
            term_scores.setdefault(doc_id, {})[term] = score
    return term_scores


def count_ordered_pairs(
    field_id: int,
    doc_id: int,
    query_terms: list[str],
    inverted_index: InvertedIndex,
) -> int:
    """Count consecutive query term pairs that sit next to each other in the field."""
    ordered = 0
    for prev_term, next_term in zip(query_terms, query_terms[1:]):
        prev_pos = inverted_index[prev_term][doc_id].position[field_id]
        next_pos = set(inverted_index[next_term][doc_id].position[field_id])
        if any(pos + 1 in next_pos for pos in prev_pos):
            ordered += 1
    return ordered


def calculate_field_score(
    field_id: int,
    term_scores: dict[int, dict[str, float]],
    inverted_index: InvertedIndex,
    query_terms: list[str],
    query_freq: dict[str, int],
    query_length: int,
    boost: FieldBoost,
    doc_length: DocLength,
) -> dict[int, float]:
    """Sum each document's term scores in a field and apply the match-shape boost.

    exact match   every term, in order, and the field holds nothing else
    order match   every term, each consecutive pair adjacent
    all occur     every term, not in order
    partial match some of the terms

    Args:
        query_length: Number of words in the raw query, compared with the
                      field length (which also counts every raw word) for
                      the exact-match test

    Returns: docId -> boosted field score
    """
    field_scores: dict[int, float] = {}

    for doc_id, scores in term_scores.items():
        total = sum(scores.values())

        if len(scores) == len(query_freq):
            pairs = count_ordered_pairs(field_id, doc_id, query_terms, inverted_index)
            if pairs == len(query_terms) - 1:
                if doc_length(doc_id, field_id) == query_length:
                    total *= boost.exact_match
                else:
                    total *= boost.order_match
            else:
                total *= boost.all_occur
        else:
            total *= boost.partial_match

        field_scores[doc_id] = total * boost.together

    return field_scores


def combine_field_scores(
    first: dict[int, float],
    second: dict[int, float],
    must_occur_in_both: bool = True,
) -> dict[int, float]:
    """Add two field score maps, keeping only shared documents unless told otherwise."""
    small, big = (first, second) if len(first) < len(second) else (second, first)

    if must_occur_in_both:
        return {doc_id: score + big[doc_id] for doc_id, score in small.items() if doc_id in big}

    combined = dict(big)
    for doc_id, score in small.items():
        combined[doc_id] = combined.get(doc_id, 0.0) + score
    return combined


def normalize(value: float, low: float, high: float, new_low: float, new_high: float) -> float:
    """Min-max normalization; a degenerate range maps to new_high."""
    if low == high:
        return new_high
    return (value - low) / (high - low) * (new_high - new_low) + new_low


def normalize_scores(scores: dict[int, float], new_low: float, new_high: float) -> dict[int, float]:
    if not scores:
        return {}
    low, high = min(scores.values()), max(scores.values())
    return {doc_id: normalize(score, low, high, new_low, new_high) for doc_id, score in scores.items()}


@dataclass(frozen=True)
class MixerScore:
    total_score: float
    bm25_score: float
    pagerank: float = -1.0

    def __str__(self) -> str:
        if self.pagerank < 0:
            return f"{self.total_score:.8f}"
        return (
            f"{self.total_score:.8f} (Normalized BM25 + Proximity: {self.bm25_score:.8f}, "
            f"Normalized PageRank: {self.pagerank:.8f})"
        )


def rank_scores(scores: Iterable[tuple[int, MixerScore]], limit: int) -> list[tuple[int, MixerScore]]:
    """Sort by total score, highest first, and keep the top limit."""
    return sorted(scores, key=lambda item: item[1].total_score, reverse=True)[:limit]
