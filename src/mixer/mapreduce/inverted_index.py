"""
Inverted Index MapReduce Job

Builds the positional inverted index of the corpus: for every stemmed term,
which documents contain it, how often in each field, and at which token
offsets.

Pipeline:
  1. textFile()    - one JSON page per line: {id, title, content, categories}
  2. flatMap       - emit (term, Posting) for every stem of the page
  3. groupByKey    - collect the postings of each term across documents
  4. mapValues     - join them into one compact record per term
  5. saveAsTextFile - "term \\t docId:f0,f1,f2|p,p,...;docId:..." per line

Fields are numbered 0 - title, 1 - content, 2 - categories. Positions count
every whitespace token of a field, including the ones dropped as stop-words
or punctuation, so adjacency between positions means adjacency in the page.
"""

import argparse
import logging
import shutil
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any, NamedTuple

from pyspark import SparkContext
from pyspark.rdd import RDD

from mixer.common.config import NUM_FIELDS
from mixer.common.data_loader import absolute_path, parse_json_line
from mixer.common.log import configure_logging
from mixer.common.spark_session import create_spark_session
from mixer.common.text import analyze_field
from mixer.mapreduce.posting import Posting, encode_postings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Step 1: Parse a page record
# ---------------------------------------------------------------------------


class PageRecord(NamedTuple):
    doc_id: int
    title: str
    content: str
    categories: str


def to_page_record(record: dict[str, Any]) -> PageRecord:
    """Validate a decoded JSON object and lowercase its fields.

    Categories are joined into one space-separated field.

    Raises:
        KeyError, TypeError, ValueError: if the record is not a page
    """
    categories = record["categories"]
    if not isinstance(categories, list):
        raise TypeError("categories must be a list")
    title, content = record["title"], record["content"]
    if not isinstance(title, str) or not isinstance(content, str):
        raise TypeError("title and content must be strings")

    return PageRecord(
        doc_id=int(record["id"]),
        title=title.lower(),
        content=content.lower(),
        categories=" ".join(str(c).lower() for c in categories),
    )


def parse_page(line: str) -> PageRecord | None:
    """Parse one corpus line; malformed lines are logged and dropped."""
    record = parse_json_line(line)
    if record is None:
        return None

    try:
        return to_page_record(record)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Skipping malformed page record %r: %s", line[:200], e)
        return None


# ---------------------------------------------------------------------------
# Step 2: Map, emit (term, Posting) for each term of a page
# ---------------------------------------------------------------------------


def index_page(page: PageRecord) -> list[tuple[str, Posting]]:
    """Build one posting per distinct term of the page.

    Positions are accumulated per field; the frequency of a field is the
    number of positions recorded for it.
    """
    positions: dict[str, list[list[int]]] = {}
    fields = (page.title, page.content, page.categories)

    for field_id, text in enumerate(fields):
        for term, position in analyze_field(text):
            if term not in positions:
                positions[term] = [[] for _ in range(NUM_FIELDS)]
            positions[term][field_id].append(position)

    return [(term, Posting.from_positions(page.doc_id, pos)) for term, pos in positions.items()]


def map_document(line: str) -> list[tuple[str, Posting]]:
    """flatMap function: corpus line -> [(term, Posting)]."""
    page = parse_page(line)
    if page is None:
        return []
    return index_page(page)


# ---------------------------------------------------------------------------
# Step 3-4: Reduce to one record per term
# ---------------------------------------------------------------------------


def reduce_postings(postings: Iterable[Posting]) -> str:
    """Join the postings of a term in grouping order."""
    return encode_postings(list(postings))


def format_index_line(item: tuple[str, str]) -> str:
    term, value = item
    return f"{term}\t{value}"


def build_inverted_index(rdd: RDD) -> RDD:
    """Build the inverted index from an RDD of corpus lines.

    Returns: RDD[(term, "docId:f0,f1,f2|p,...;docId:...")]
    """
    return rdd.flatMap(map_document).groupByKey().mapValues(reduce_postings)


def run_index_job(sc: SparkContext, input_path: str | Path, output_path: str | Path) -> int:
    """Run the index job from a corpus file to a directory of part files.

    An existing output directory is replaced.

    Returns: the number of distinct terms written
    """
    output = absolute_path(output_path)
    if output.exists():
        logger.warning("Removing existing index output %s", output)
        shutil.rmtree(output)

    index = build_inverted_index(sc.textFile(str(absolute_path(input_path)))).cache()
    index.map(format_index_line).saveAsTextFile(str(output))
    num_terms = index.count()
    index.unpersist()

    logger.info("Inverted index of %d terms written to %s", num_terms, output)
    return num_terms


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mixer mapreduce", description="Build the positional inverted index of a JSON corpus."
    )
    parser.add_argument("input", type=absolute_path, help="line-delimited JSON corpus (data.json)")
    parser.add_argument("output", type=absolute_path, help="output directory for the index part files")
    parser.add_argument("--master", default="local[*]", help="Spark master URL (default: local[*])")
    parser.add_argument("--log-output", type=absolute_path, help="file to write logs into (default: .logs/mapreduce.log)")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Build the inverted index of a corpus."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if not args.input.is_file():
        parser.error(f"invalid corpus path (not exist or not a file): {args.input}")

    configure_logging("mapreduce", log_file=args.log_output)

    spark = create_spark_session("InvertedIndex", master=args.master)
    try:
        run_index_job(spark.sparkContext, args.input, args.output)
    finally:
        spark.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
