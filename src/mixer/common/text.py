"""
Text analysis shared by indexing and querying.

Both sides must agree exactly: a page token and a query token only match if
they went through the same punctuation stripping, lowercasing, stop-word
filtering and Snowball stemming.
"""

import string
from collections import Counter

from nltk.stem.snowball import SnowballStemmer

STOP_WORDS = frozenset({
    "i", "me", "my", "myself", "we", "our", "ours", "ourselves", "you", "your", "yours", "yourself",
    "yourselves", "he", "him", "his", "himself", "she", "her", "hers", "herself", "it", "its", "itself",
    "they", "them", "their", "theirs", "themselves", "what", "which", "who", "whom", "this", "that",
    "these", "those", "am", "is", "are", "was", "were", "be", "been", "being", "have", "has", "had",
    "having", "do", "does", "did", "doing", "would", "should", "could", "ought", "cannot", "a", "an",
    "the", "and", "but", "if", "or", "because", "as", "until", "while", "of", "at", "by", "for", "with",
    "about", "against", "between", "into", "through", "during", "before", "after", "above", "below", "to",
    "from", "up", "down", "in", "out", "on", "off", "over", "under", "again", "further", "then", "once",
    "here", "there", "when", "where", "why", "how", "all", "any", "both", "each", "few", "more", "most",
    "other", "some", "such", "no", "nor", "not", "only", "own", "same", "so", "than", "too", "very",
})

_stemmer = SnowballStemmer("english")


def is_stop_word(word: str) -> bool:
    return word in STOP_WORDS


def split_keyword(keyword: str) -> list[str]:
    """Split a raw keyword string into its whitespace-separated words."""
    return keyword.split()


def normalize_token(token: str) -> str | None:
    """Strip surrounding punctuation and lowercase a raw token.

    Returns None unless what is left is a non-empty ASCII alphanumeric word.
    """
    token = token.strip(string.punctuation).strip().lower()
    if token and token.isascii() and token.isalnum():
        return token
    return None


def stem(word: str) -> str:
    return _stemmer.stem(word)


def analyze_field(text: str) -> list[tuple[str, int]]:
    """
    Turn a field into (term, position) pairs.

    The position is the offset of the token in the raw whitespace-split
    stream: dropped tokens (stop-words, punctuation-only tokens) still
    advance it. Phrase and order matching depend on these offsets.
    """
    terms: list[tuple[str, int]] = []
    for position, raw in enumerate(text.split()):
        token = normalize_token(raw)
        if token is None or is_stop_word(token):
            continue
        terms.append((stem(token), position))
    return terms


def analyze_query(query: str) -> list[str]:
    """Return the query terms in order, analyzed the same way as pages."""
    return [term for term, _ in analyze_field(query.lower())]


def query_frequency(terms: list[str]) -> dict[str, int]:
    """Map each distinct query term to the number of times it appears."""
    return dict(Counter(terms))


def count_tokens(text: str) -> int:
    """Whitespace token count, the document length used by BM25."""
    return len(text.split())
