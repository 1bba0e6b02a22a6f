"""
Importer: load the index and PageRank job outputs into the key-value store.

The four loaders run concurrently on a thread pool against one store handle.
Their key namespaces are disjoint, so the only synchronization needed is the
store's own write lock. A loader that raises is reported and the others keep
going; nothing is retried.
"""

import argparse
import logging
import sys
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from mixer.common.config import DATA_FILE, INDEX_FILE
from mixer.common.data_loader import absolute_path
from mixer.common.kvstore import KeyValueStore
from mixer.common.log import configure_logging
from mixer.importer.loaders import (
    import_document_lengths,
    import_pageranks,
    import_postings,
    import_titles,
)

logger = logging.getLogger(__name__)


@dataclass
class ImportSummary:
    """Records imported per loader, and the loaders that failed."""

    counts: dict[str, int] = field(default_factory=dict)
    failures: dict[str, BaseException] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


def run_importers(
    store: KeyValueStore,
    json_output_path: str | Path,
    index_output_path: str | Path,
    pagerank_output_path: str | Path,
) -> ImportSummary:
    """Run the four loaders in parallel and wait for all of them.

    Args:
        store: Writable key-value store
        json_output_path: Directory holding the corpus export (data.json, index.json)
        index_output_path: Index job output (file or part-file directory)
        pagerank_output_path: Final PageRank iteration (file or part-file directory)
    """
    json_dir = Path(json_output_path)
    tasks: dict[str, tuple[Callable[[KeyValueStore, Path], int], Path]] = {
        "titles": (import_titles, json_dir / INDEX_FILE),
        "postings": (import_postings, Path(index_output_path)),
        "lengths": (import_document_lengths, json_dir / DATA_FILE),
        "pageranks": (import_pageranks, Path(pagerank_output_path)),
    }

    summary = ImportSummary()
    with ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix="importer") as executor:
        futures: dict[str, Future[int]] = {
            name: executor.submit(loader, store, path) for name, (loader, path) in tasks.items()
        }

        for name, future in futures.items():
            try:
                summary.counts[name] = future.result()
            except Exception as e:
                logger.error("Loader %s aborted: %s", name, e, exc_info=e)
                summary.failures[name] = e

    if summary.failures:
        logger.error("Import incomplete, failed loaders: %s", ", ".join(sorted(summary.failures)))
    else:
        logger.info("Import complete: %s", summary.counts)
    return summary


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mixer importer", description="Import the index and PageRank outputs into the key-value store."
    )
    parser.add_argument("store", type=absolute_path, help="path of the key-value store (SQLite file, created if missing)")
    parser.add_argument("json_output", type=absolute_path, help="directory of the corpus export (data.json, index.json)")
    parser.add_argument("index_output", type=absolute_path, help="inverted index job output")
    parser.add_argument("pagerank_output", type=absolute_path, help="final PageRank iteration output")
    parser.add_argument("--log-output", type=absolute_path, help="file to write logs into (default: .logs/importer.log)")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    store_path = args.store
    if store_path.is_dir():
        parser.error(f"invalid store path (is a directory): {store_path}")

    json_output = args.json_output
    if not json_output.is_dir():
        parser.error(f"invalid corpus export path (not exist or not directory): {json_output}")

    for label, path in (("index", args.index_output), ("PageRank", args.pagerank_output)):
        if not path.exists():
            parser.error(f"invalid {label} output path (not exist): {path}")

    configure_logging("importer", log_file=args.log_output)

    with KeyValueStore(store_path) as store:
        summary = run_importers(store, json_output, args.index_output, args.pagerank_output)
    return 0 if summary.ok else 1


if __name__ == "__main__":
    sys.exit(main())
