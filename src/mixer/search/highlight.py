"""
Presentation helpers shared by every searcher: paging, keyword highlighting
and snippet selection.
"""

import math
import re
from collections.abc import Sequence
from typing import Any, NamedTuple, TypeVar

from mixer.common.config import RESULT_PER_PAGE, SNIPPET_SENTENCES
from mixer.common.text import split_keyword

T = TypeVar("T")

_SENTENCE_SPLIT = re.compile(r"[,;.\n]")
_NEWLINES = re.compile(r"\r\n|\r|\n")
_SPACES = re.compile(r" +")


class Page(NamedTuple):
    items: list[Any]
    page_no: int
    total_pages: int


def paginate(items: Sequence[T], page_no: int, per_page: int = RESULT_PER_PAGE) -> Page:
    """Cut one page out of a ranked list.

    page_no is 1-based and clamped into [1, total_pages]. An empty list gives
    an empty page numbered 0 of 0.
    """
    if not items:
        return Page([], 0, 0)

    total_pages = math.ceil(len(items) / per_page)
    page_no = min(max(page_no, 1), total_pages)
    start = (page_no - 1) * per_page
    return Page(list(items[start:start + per_page]), page_no, total_pages)


def _keyword_words(keyword: str) -> list[str]:
    return [word.lower() for word in split_keyword(keyword)]


def full_text_highlight(text: str, keyword: str, tag: str = "b") -> str:
    """Wrap every case-insensitive occurrence of the keyword's words in a tag."""
    words = _keyword_words(keyword)
    if not words or not text:
        return text

    # Longest first so "cats" wins over "cat" at the same offset
    alternatives = sorted(set(words), key=len, reverse=True)
    pattern = re.compile("|".join(re.escape(word) for word in alternatives), re.IGNORECASE)
    return pattern.sub(lambda m: f"<{tag}>{m.group(0)}</{tag}>", text)


def score_sentence(sentence: str, patterns: list[re.Pattern]) -> int:
    """20 × the rarest keyword's count plus the total count.

    Sentences holding every keyword at least once come first.
    """
    counts = [len(pattern.findall(sentence)) for pattern in patterns]
    if not counts:
        return 0
    return min(counts) * 20 + sum(counts)


def fragment_highlight(text: str, keyword: str, max_sentences: int = SNIPPET_SENTENCES) -> str:
    """Pick the best sentences of a body and highlight the keyword in them."""
    sentences = _SENTENCE_SPLIT.split(text)
    patterns = [
        re.compile(r" +" + re.escape(word) + r" +", re.IGNORECASE) for word in _keyword_words(keyword)
    ]

    scores = [score_sentence(sentence, patterns) for sentence in sentences]
    best = sorted(range(len(sentences)), key=lambda i: scores[i], reverse=True)[:max_sentences]

    fragments = []
    for i in best:
        fragment = full_text_highlight(sentences[i], keyword, "b")
        fragment = _NEWLINES.sub(" ", fragment)
        fragments.append(_SPACES.sub(" ", fragment))

    return "... " + " ... ".join(fragments) + " ..."
