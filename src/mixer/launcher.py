"""
Single entry point dispatching to the Mixer subroutines:

  mixer mapreduce <data.json> <index-output>
  mixer pagerank  <link.json> <pagerank-output> [damping] [convergence]
  mixer importer  <store> <json-output> <index-output> <pagerank-output>
  mixer query     <store> <corpus.db> <keyword>
"""

import sys
from collections.abc import Callable

from mixer.importer import importer
from mixer.mapreduce import inverted_index
from mixer.pagerank import pagerank
from mixer.search import service

SUBROUTINES: dict[str, tuple[Callable[[list[str]], int], str]] = {
    "mapreduce": (inverted_index.main, "build the inverted index with MapReduce"),
    "pagerank": (pagerank.main, "compute PageRank with iterative MapReduce"),
    "importer": (importer.main, "import the MapReduce outputs into the key-value store"),
    "query": (service.main, "run a search against the key-value store"),
}


def print_usage() -> None:
    print("usage: mixer <subroutine> [options] <arguments...>")
    print("possible subroutines:")
    for name, (_, description) in SUBROUTINES.items():
        print(f" {name:<10}{description}")


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv

    if not args:
        print("mixer: subroutine is not specified")
        print_usage()
        return 1

    if args[0] not in SUBROUTINES:
        print(f"mixer: invalid subroutine: {args[0]}")
        print_usage()
        return 1

    entry_point, _ = SUBROUTINES[args[0]]
    return entry_point(args[1:])


if __name__ == "__main__":
    sys.exit(main())
