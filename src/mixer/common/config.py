"""
Configuration constants shared by the batch jobs, the importer and the searcher.

Every value here is a default: the command-line entry points accept
overrides for the ones that matter at deployment time (damping factor,
convergence, iteration cap, paths).
"""

from typing import NamedTuple


class ConfigurationError(ValueError):
    """Raised when a job or service is started with invalid settings."""


# ---------------------------------------------------------------------------
# Fields
# ---------------------------------------------------------------------------

# Field ids used by postings and document lengths: 0 - title, 1 - content, 2 - categories
TITLE_FIELD = 0
CONTENT_FIELD = 1
CATEGORY_FIELD = 2
NUM_FIELDS = 3

# ---------------------------------------------------------------------------
# PageRank
# ---------------------------------------------------------------------------

DAMPING_FACTOR = 0.85
CONVERGENCE = 1e-6
MAX_ITERATIONS = 100

# ---------------------------------------------------------------------------
# Importer
# ---------------------------------------------------------------------------

# Progress is logged every PROGRESS_INTERVAL records
PROGRESS_INTERVAL = 1000

DATA_FILE = "data.json"
INDEX_FILE = "index.json"
LINK_FILE = "link.json"

# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

BM25_K1 = 1.2
BM25_K2 = 100.0
BM25_B = 0.75


class FieldBoost(NamedTuple):
    """Score multipliers applied to a field depending on how the query matched."""

    exact_match: float
    order_match: float
    all_occur: float
    partial_match: float
    together: float


TITLE_BOOST = FieldBoost(20.0, 10.0, 5.0, 1.0, 1.0)
CONTENT_BOOST = FieldBoost(2.0, 1.2, 1.05, 1.0, 0.5)
CATEGORY_BOOST = FieldBoost(20.0, 10.0, 5.0, 1.0, 1.0)

# Normalized BM25 lives in [0, 100] and normalized PageRank in [0, 1000]
BM25_NORMALIZED_MAX = 100.0
PAGERANK_NORMALIZED_MAX = 1000.0
BM25_WEIGHT = 0.9
PAGERANK_WEIGHT = 0.1

# ---------------------------------------------------------------------------
# Search service
# ---------------------------------------------------------------------------

CATEGORY_IDENTIFIER = "category:"
RESULT_PER_PAGE = 10
MAX_RESULTS = 1000
SNIPPET_SENTENCES = 5
BATCH_READ_COUNT = 50

METHOD_MIXER = "mixer"
METHOD_MIXER_PAGERANK = "mixerpr"
METHODS = (METHOD_MIXER, METHOD_MIXER_PAGERANK)

PAGE_URL_PREFIX = "https://en.wikipedia.org/wiki/"
CATEGORY_URL_PREFIX = "https://en.wikipedia.org/wiki/Category:"
