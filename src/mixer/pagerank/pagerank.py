"""
PageRank: Iterative MapReduce over the Link Graph

Each document's authority is the probability that a random surfer is on it:

  PR(A) = (1 - d) / N + d × Σ(PR(Ti) / L(Ti))

Where:
  d = damping factor (default 0.85)
  N = number of documents in the graph
  PR(Ti) = PageRank of page Ti that links to A
  L(Ti) = number of outbound links from Ti

Every iteration is one map + reduce pass over a text file of
``docId,rank \\t outlinks`` lines, and writes the same format for the next
iteration. The reduce stage also returns, per document, the rank change
scaled by 1/epsilon and truncated to an integer; the driver sums those after
the iteration, and the job stops once the summed change times epsilon drops
below epsilon. A maximum iteration count bounds graphs that never settle.

Key PySpark patterns:
- flatMap() to emit contributions plus the passthrough graph and old rank
- groupByKey() so the reducer sees every record of a document at once
- sum() on the reduce output as the per-iteration convergence counter
"""

import argparse
import logging
import shutil
import sys
from collections.abc import Iterable
from functools import partial
from operator import itemgetter
from pathlib import Path
from typing import Any, NamedTuple

from pyspark import SparkContext
from pyspark.rdd import RDD

from mixer.common.config import CONVERGENCE, DAMPING_FACTOR, MAX_ITERATIONS, ConfigurationError
from mixer.common.data_loader import absolute_path, iter_lines, parse_json_line
from mixer.common.log import configure_logging
from mixer.common.spark_session import create_spark_session

logger = logging.getLogger(__name__)

# Tags of the values a document receives in the reduce stage
CONTRIBUTION = "i"
OUTLINKS = "o"
PREVIOUS_RANK = "r"

LINK_INPUT_NAME = "link-input"

# ---------------------------------------------------------------------------
# Link graph loading
# ---------------------------------------------------------------------------


class RankRecord(NamedTuple):
    doc_id: int
    rank: float
    outlinks: tuple[int, ...]


def parse_link_record(record: dict[str, Any]) -> tuple[int, list[int]]:
    """Extract (docId, [outlink ids]) from a link.json object."""
    links = record["links"]
    if not isinstance(links, list):
        raise TypeError("links must be a list")
    return int(record["id"]), [int(link) for link in links]


def load_link_graph(lines: Iterable[str]) -> dict[int, list[int]]:
    """Build the adjacency list from link.json lines.

    The graph's documents are the ids listed in the file. Links pointing
    anywhere else are dangling references and are dropped.
    """
    raw_graph: dict[int, list[int]] = {}
    for line in lines:
        record = parse_json_line(line)
        if record is None:
            continue
        try:
            doc_id, links = parse_link_record(record)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed link record %r: %s", line[:200], e)
            continue
        raw_graph[doc_id] = links

    graph: dict[int, list[int]] = {}
    dropped = 0
    for doc_id, links in raw_graph.items():
        kept = [link for link in links if link in raw_graph]
        dropped += len(links) - len(kept)
        graph[doc_id] = kept

    logger.info("Link graph has %d documents, %d dangling links dropped", len(graph), dropped)
    return graph


# ---------------------------------------------------------------------------
# Rank file format: "docId,rank \t outlink,outlink,..."
# ---------------------------------------------------------------------------


def format_rank_line(record: RankRecord) -> str:
    outlinks = ",".join(str(link) for link in record.outlinks)
    return f"{record.doc_id},{record.rank!r}\t{outlinks}"


def parse_rank_line(line: str) -> RankRecord:
    key, _, value = line.partition("\t")
    doc_id, rank = key.split(",")
    outlinks = tuple(int(link) for link in value.split(",") if link.strip())
    return RankRecord(int(doc_id), float(rank), outlinks)


def write_rank_file(graph: dict[int, list[int]], path: str | Path) -> int:
    """Write the first iteration's input: every document starts at 1/N.

    Returns: N, the number of documents
    """
    num_docs = len(graph)
    if num_docs == 0:
        raise ConfigurationError("link graph is empty, nothing to rank")

    initial_rank = 1.0 / num_docs
    with Path(path).open("w", encoding="utf-8") as f:
        for lines_written, (doc_id, links) in enumerate(graph.items(), start=1):
            f.write(format_rank_line(RankRecord(doc_id, initial_rank, tuple(links))) + "\n")
            if lines_written % 10000 == 0:
                logger.info("%d lines have been written", lines_written)

    logger.info("Initial ranks of %d documents written to %s", num_docs, path)
    return num_docs


def read_rank_file(path: str | Path) -> dict[int, float]:
    """Read a rank file or iteration directory into docId -> rank."""
    ranks = {}
    for line in iter_lines(path):
        if line:
            record = parse_rank_line(line)
            ranks[record.doc_id] = record.rank
    return ranks


# ---------------------------------------------------------------------------
# PageRank iteration
# ---------------------------------------------------------------------------


def map_rank_record(record: RankRecord) -> list[tuple[int, tuple[str, Any]]]:
    """Distribute a document's rank over its outlinks.

    Also re-emits the outlinks (so the graph survives the shuffle) and the
    current rank (so the reducer can measure the change).
    """
    emitted: list[tuple[int, tuple[str, Any]]] = []
    if record.outlinks:
        share = record.rank / len(record.outlinks)
        emitted.extend((target, (CONTRIBUTION, share)) for target in record.outlinks)

    emitted.append((record.doc_id, (OUTLINKS, record.outlinks)))
    emitted.append((record.doc_id, (PREVIOUS_RANK, record.rank)))
    return emitted


def reduce_rank(
    doc_id: int,
    values: Iterable[tuple[str, Any]],
    damping: float,
    num_docs: int,
    epsilon: float,
) -> tuple[RankRecord, int]:
    """Compute the new rank of a document.

    Returns: (next iteration's record, |new - previous| / epsilon truncated)
    """
    rank = (1 - damping) / num_docs
    previous_rank = 0.0
    outlinks: tuple[int, ...] = ()

    for tag, value in values:
        if tag == CONTRIBUTION:
            rank += damping * value
        elif tag == OUTLINKS:
            outlinks = value
        elif tag == PREVIOUS_RANK:
            previous_rank = value

    scaled_delta = int(abs(rank - previous_rank) / epsilon)
    return RankRecord(doc_id, rank, outlinks), scaled_delta


def run_iteration(lines: RDD, damping: float, num_docs: int, epsilon: float) -> RDD:
    """One map + reduce pass.

    Returns: RDD[(RankRecord, scaled_delta)]
    """
    reducer = partial(reduce_rank, damping=damping, num_docs=num_docs, epsilon=epsilon)
    return (
        lines.filter(lambda line: line.strip() != "")
        .map(parse_rank_line)
        .flatMap(map_rank_record)
        .groupByKey()
        .map(lambda kv: reducer(kv[0], kv[1]))
    )


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


class PageRankResult(NamedTuple):
    num_docs: int
    iterations: int
    convergence: float
    converged: bool
    output_path: Path


class PageRankJob:
    """Iterates PageRank until convergence or until max_iterations."""

    def __init__(
        self,
        damping: float = DAMPING_FACTOR,
        convergence: float = CONVERGENCE,
        max_iterations: int = MAX_ITERATIONS,
    ):
        if not 0.0 < damping < 1.0:
            raise ConfigurationError(f"damping factor must be in (0, 1), got {damping}")
        if convergence <= 0.0:
            raise ConfigurationError(f"convergence must be positive, got {convergence}")
        if max_iterations < 1:
            raise ConfigurationError(f"max iterations must be at least 1, got {max_iterations}")

        self.damping = damping
        self.convergence = convergence
        self.max_iterations = max_iterations

    def prepare_input(self, link_input_path: str | Path, output_dir: Path) -> tuple[Path, int]:
        """Reset output_dir and write the initial rank file into it."""
        if output_dir.exists():
            shutil.rmtree(output_dir)
        output_dir.mkdir(parents=True)

        graph = load_link_graph(iter_lines(link_input_path))
        input_path = output_dir / LINK_INPUT_NAME
        num_docs = write_rank_file(graph, input_path)
        return input_path, num_docs

    def run_iteration_job(self, sc: SparkContext, iteration: int, input_path: Path,
                          output_path: Path, num_docs: int) -> float:
        """Run one iteration and return its convergence (summed change)."""
        ranked = run_iteration(sc.textFile(str(input_path)), self.damping, num_docs, self.convergence).cache()
        ranked.map(lambda r: format_rank_line(r[0])).saveAsTextFile(str(output_path))
        scaled_convergence = int(ranked.map(itemgetter(1)).sum())
        ranked.unpersist()

        convergence = scaled_convergence * self.convergence
        logger.info(
            "Iteration: %d, scaledConvergence = %d, convergence = %g",
            iteration, scaled_convergence, convergence,
        )
        return convergence

    def run(self, sc: SparkContext, link_input_path: str | Path, output_dir: str | Path) -> PageRankResult:
        output = absolute_path(output_dir)
        input_path, num_docs = self.prepare_input(link_input_path, output)

        convergence = float("inf")
        for iteration in range(1, self.max_iterations + 1):
            iteration_path = output / f"iteration-{iteration}"
            logger.info("Iteration: %d, output to %s", iteration, iteration_path)

            convergence = self.run_iteration_job(sc, iteration, input_path, iteration_path, num_docs)
            if convergence < self.convergence:
                logger.info("Converged! PageRank has been computed in %d iterations", iteration)
                return PageRankResult(num_docs, iteration, convergence, True, iteration_path)

            input_path = iteration_path

        logger.warning(
            "PageRank stopped after %d iterations without converging (convergence = %g)",
            self.max_iterations, convergence,
        )
        return PageRankResult(num_docs, self.max_iterations, convergence, False, input_path)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mixer pagerank", description="Compute PageRank of the link graph.")
    parser.add_argument("input", type=absolute_path, help="line-delimited JSON link graph (link.json)")
    parser.add_argument("output", type=absolute_path, help="output directory, replaced if it exists")
    parser.add_argument("damping", nargs="?", type=float, default=DAMPING_FACTOR,
                        help=f"damping factor (default: {DAMPING_FACTOR})")
    parser.add_argument("convergence", nargs="?", type=float, default=CONVERGENCE,
                        help=f"convergence limit epsilon (default: {CONVERGENCE})")
    parser.add_argument("--max-iterations", type=int, default=MAX_ITERATIONS,
                        help=f"stop after this many iterations (default: {MAX_ITERATIONS})")
    parser.add_argument("--master", default="local[*]", help="Spark master URL (default: local[*])")
    parser.add_argument("--log-output", type=absolute_path, help="file to write logs into (default: .logs/pagerank.log)")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run PageRank over link.json."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if not args.input.exists():
        parser.error(f"invalid link graph path (not exist): {args.input}")

    try:
        job = PageRankJob(args.damping, args.convergence, args.max_iterations)
    except ConfigurationError as e:
        parser.error(str(e))

    configure_logging("pagerank", log_file=args.log_output)

    spark = create_spark_session("PageRank", master=args.master)
    try:
        result = job.run(spark.sparkContext, args.input, args.output)
    except ConfigurationError as e:
        logger.error("PageRank failed: %s", e)
        return 1
    finally:
        spark.stop()

    logger.info("Final ranks of %d documents: %s", result.num_docs, result.output_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
