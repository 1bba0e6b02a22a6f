"""
Tests for the inverted index MapReduce job.
"""

import json
from pathlib import Path

import pytest
from pyspark import SparkContext

from mixer.common.data_loader import iter_lines
from mixer.common.text import stem
from mixer.mapreduce.inverted_index import (
    PageRecord,
    build_inverted_index,
    format_index_line,
    index_page,
    map_document,
    parse_page,
    reduce_postings,
    run_index_job,
    to_page_record,
)
from mixer.mapreduce.posting import Posting, decode_postings

from conftest import page, write_json_lines


class TestParsePage:
    """Tests for corpus record parsing."""

    def test_fields_are_lowercased_and_categories_joined(self) -> None:
        record = page(4, "The Matrix", "A Film", ["Science Fiction", "Films"])

        assert to_page_record(record) == PageRecord(4, "the matrix", "a film", "science fiction films")

    def test_bad_records_are_dropped(self) -> None:
        assert parse_page("") is None
        assert parse_page("{broken") is None
        assert parse_page(json.dumps({"id": 1, "title": "no content"})) is None
        assert parse_page(json.dumps({"id": "x", "title": "t", "content": "c", "categories": []})) is None
        assert parse_page(json.dumps({"id": 1, "title": "t", "content": "c", "categories": "oops"})) is None


class TestMapDocument:
    """Tests for the map step."""

    def test_one_posting_per_term(self) -> None:
        line = json.dumps(page(1, "Cats and Dogs", "cats chase dogs, dogs chase cats", ["Pets"]))

        postings = dict(map_document(line))

        assert set(postings) == {stem("cats"), stem("dogs"), stem("chase"), stem("pets")}
        assert all(p.doc_id == 1 for p in postings.values())

    def test_positions_count_dropped_tokens(self) -> None:
        """'and' is dropped from the title but still occupies position 1."""
        postings = dict(index_page(PageRecord(1, "cats and dogs", "dogs chase cats", "")))

        cats = postings[stem("cats")]
        dogs = postings[stem("dogs")]
        assert cats.position == ((0,), (2,), ())
        assert dogs.position == ((2,), (0,), ())
        assert cats.frequency == (1, 1, 0)

    def test_frequency_per_field(self) -> None:
        postings = dict(index_page(PageRecord(2, "cat", "cat cat cat", "cat")))

        assert postings[stem("cat")].frequency == (1, 3, 1)

    def test_stop_word_only_page_emits_nothing(self) -> None:
        assert index_page(PageRecord(3, "the", "and of the", "")) == []

    def test_malformed_line_emits_nothing(self) -> None:
        assert map_document("not json") == []
        assert map_document("") == []


class TestReduce:
    """Tests for the reduce step and the output format."""

    def test_reduce_joins_postings(self) -> None:
        postings = [Posting.from_positions(1, [[0], [], []]), Posting.from_positions(2, [[], [3], []])]

        value = reduce_postings(iter(postings))

        assert decode_postings(value) == postings

    def test_format_index_line(self) -> None:
        assert format_index_line(("cat", "1:1,0,0|0")) == "cat\t1:1,0,0|0"


class TestInvertedIndexJob:
    """Tests for the job running on Spark."""

    @pytest.fixture
    def corpus_lines(self) -> list[str]:
        pages = [
            page(0, "Cats", "cats are small", ["Pets"]),
            page(1, "Dogs", "dogs chase cats", ["Pets"]),
            page(2, "Fish", "fish swim", ["Animals"]),
        ]
        return [json.dumps(p) for p in pages] + ["{broken", ""]

    def test_build_inverted_index(self, sc: SparkContext, corpus_lines: list[str]) -> None:
        index = dict(build_inverted_index(sc.parallelize(corpus_lines, 2)).collect())

        cat_docs = {p.doc_id for p in decode_postings(index[stem("cats")])}
        pet_docs = {p.doc_id for p in decode_postings(index[stem("pets")])}
        assert cat_docs == {0, 1}
        assert pet_docs == {0, 1}

    def test_every_term_doc_pair_once(self, sc: SparkContext, corpus_lines: list[str]) -> None:
        index = build_inverted_index(sc.parallelize(corpus_lines, 2)).collect()

        for term, value in index:
            doc_ids = [p.doc_id for p in decode_postings(value)]
            assert len(doc_ids) == len(set(doc_ids)), term

    def test_run_index_job_writes_text_output(self, sc: SparkContext, tmp_path: Path) -> None:
        data_path = write_json_lines(tmp_path / "data.json", [
            page(0, "Cats", "cats are small", ["Pets"]),
            page(1, "Dogs", "dogs chase cats", ["Pets"]),
        ])
        output = tmp_path / "index"
        output.mkdir()  # a stale output directory is replaced

        num_terms = run_index_job(sc, data_path, output)

        lines = [line for line in iter_lines(output) if line]
        assert len(lines) == num_terms
        index = dict(line.split("\t") for line in lines)
        assert {p.doc_id for p in decode_postings(index[stem("dogs")])} == {1}
        assert decode_postings(index[stem("cats")])[0].frequency in ((1, 1, 0), (0, 1, 0))
