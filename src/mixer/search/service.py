"""
Query service: validate a request, run the chosen searcher, and build the
response a front end renders.

The service is transport-agnostic. ``handle`` takes the decoded request
parameters and returns ``{"error": False, "data": {...}}`` on success or
``{"error": True, "data": "<reason>"}`` when the request is rejected, so a
bad request is never confused with a search that found nothing.
"""

import argparse
import json
import logging
import sys
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from mixer.common.config import (
    CATEGORY_IDENTIFIER,
    METHOD_MIXER,
    METHOD_MIXER_PAGERANK,
    METHODS,
    RESULT_PER_PAGE,
    ConfigurationError,
)
from mixer.common.data_loader import absolute_path
from mixer.common.kvstore import KeyValueStore
from mixer.common.log import configure_logging
from mixer.search.corpus import CorpusStore, RelatedPage
from mixer.search.highlight import fragment_highlight, full_text_highlight, paginate
from mixer.search.searcher import MixerSearcher, RankedTitle, Searcher

logger = logging.getLogger(__name__)


def split_query(query: str) -> tuple[str, str]:
    """Split "keyword category:filter" into its lowercased (keyword, category)."""
    keyword, sep, category = query.partition(CATEGORY_IDENTIFIER)
    if not sep:
        return query.strip().lower(), ""
    return keyword.strip().lower(), category.strip().lower()


def parse_page_number(raw: Any) -> int:
    """Requested page; anything non-numeric means the first page."""
    if raw is None:
        return 1
    try:
        return int(str(raw).strip())
    except ValueError:
        return 1


def build_related_pages(
    corpus: CorpusStore,
    ranked: list[RankedTitle],
    keyword: str,
    category: str,
) -> list[RelatedPage]:
    """Fetch and highlight the pages of one result page, keeping rank order."""
    rows = corpus.fetch_pages([item.title for item in ranked])

    pages = []
    for item in ranked:
        row = rows.get(item.title)
        if row is None:
            logger.warning("Page %r is missing from the corpus, dropped from results", item.title)
            continue
        pages.append(RelatedPage(
            title=full_text_highlight(row.title, keyword, "b"),
            raw_title=row.title,
            snippet=fragment_highlight(row.content, keyword),
            categories=[full_text_highlight(c, category, "b") for c in row.categories],
            raw_categories=row.categories,
            last_modify=row.last_modify,
            score=item.score,
        ))
    return pages


class QueryService:
    """Answers search requests against one key-value store and one corpus."""

    def __init__(self, searchers: Mapping[str, Searcher], corpus: CorpusStore, per_page: int = RESULT_PER_PAGE):
        self.searchers = dict(searchers)
        self.corpus = corpus
        self.per_page = per_page

    @classmethod
    def open(cls, store_path: str | Path, corpus_path: str | Path) -> "QueryService":
        store = KeyValueStore(store_path, read_only=True)
        searchers = {
            METHOD_MIXER: MixerSearcher(store, with_pagerank=False),
            METHOD_MIXER_PAGERANK: MixerSearcher(store, with_pagerank=True),
        }
        return cls(searchers, CorpusStore(corpus_path))

    def search(self, query: str, method: str, page_no: int) -> dict[str, Any]:
        keyword, category = split_query(query)
        result = self.searchers[method].search(keyword, category)

        page = paginate(result.ranked, page_no, self.per_page)
        pages = build_related_pages(self.corpus, page.items, keyword, category)
        return {
            "hits": result.hits,
            "pageNo": page.page_no,
            "totalPages": page.total_pages,
            "pages": [p.to_json() for p in pages],
        }

    def handle(self, params: Mapping[str, Any]) -> dict[str, Any]:
        """Validate request parameters and run the search."""
        method = str(params.get("method") or "").strip().lower()
        keyword = str(params.get("keyword") or "").strip()

        if not method:
            return reject("Parameter `method` missing.")
        if not keyword:
            return reject("Parameter `keyword` missing.")
        if method not in self.searchers:
            available = ", ".join(f"`{m}`" for m in self.searchers)
            return reject(f"Invalid parameter `method`. Available methods are {available}.")

        start = time.perf_counter()
        data = self.search(keyword, method, parse_page_number(params.get("page")))
        data["elapsedTime"] = int((time.perf_counter() - start) * 1000)
        return {"error": False, "data": data}


def reject(reason: str) -> dict[str, Any]:
    return {"error": True, "data": reason}


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mixer query", description="Run one search and print the JSON response.")
    parser.add_argument("store", type=absolute_path, help="key-value store written by the importer")
    parser.add_argument("corpus", type=absolute_path, help="SQLite corpus database with the pages table")
    parser.add_argument("keyword", help='query, optionally "keyword category:filter"')
    parser.add_argument("--method", default=METHOD_MIXER_PAGERANK, choices=METHODS,
                        help=f"ranking method (default: {METHOD_MIXER_PAGERANK})")
    parser.add_argument("--page", type=int, default=1, help="1-based result page (default: 1)")
    parser.add_argument("--log-output", type=absolute_path, help="file to write logs into (default: .logs/query.log)")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    for label, path in (("key-value store", args.store), ("corpus database", args.corpus)):
        if not path.is_file():
            parser.error(f"invalid {label} path (not exist or not a file): {path}")

    configure_logging("query", log_file=args.log_output)

    try:
        service = QueryService.open(args.store, args.corpus)
    except ConfigurationError as e:
        logger.error("Cannot start the query service: %s", e)
        return 1

    response = service.handle({"method": args.method, "keyword": args.keyword, "page": args.page})
    print(json.dumps(response, indent=2, ensure_ascii=False))
    return 1 if response["error"] else 0


if __name__ == "__main__":
    sys.exit(main())
