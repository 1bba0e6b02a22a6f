"""
Tests for mixer.common utilities.
"""

import inspect
import logging
import os
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from pyspark.sql import SparkSession

from mixer.common.data_loader import (
    PROJECT_ROOT,
    absolute_path,
    get_data_path,
    iter_lines,
    list_input_files,
    load_json_lines,
    parse_json_line,
)
from mixer.common.log import configure_logging, elapsed_time
from mixer.common.spark_session import (
    PACKAGE_SOURCE_DIR,
    _build_app_name,
    _parse_job_identifier,
    _worker_pythonpath,
    create_spark_session,
    get_spark_context,
)
from mixer.common.text import (
    analyze_field,
    analyze_query,
    count_tokens,
    is_stop_word,
    normalize_token,
    query_frequency,
    split_keyword,
    stem,
)


class TestSparkSessionUtils:
    """Tests for spark_session.py utilities."""

    def test_create_spark_session_signature(self) -> None:
        """Verify create_spark_session has correct signature."""
        sig = inspect.signature(create_spark_session)
        params = list(sig.parameters.keys())

        assert "job_name" in params
        assert "master" in params

        # Check defaults
        assert sig.parameters["job_name"].default is None
        assert sig.parameters["master"].default == "local[*]"

    def test_get_spark_context_signature(self) -> None:
        """Verify get_spark_context has correct signature."""
        sig = inspect.signature(get_spark_context)

        assert "job_name" in sig.parameters
        assert sig.parameters["job_name"].default is None

    def test_job_identifier_from_path(self) -> None:
        """A file path becomes a TitleCase job name."""
        assert _parse_job_identifier("/jobs/inverted_index.py") == "InvertedIndex"
        assert _parse_job_identifier("PageRank") == "PageRank"
        assert _parse_job_identifier(None) is None

    def test_app_name_has_prefix(self) -> None:
        assert _build_app_name("PageRank") == "Mixer-PageRank"
        assert _build_app_name(None) == "Mixer"

    def test_workers_can_import_the_package(self) -> None:
        """The executors' PYTHONPATH starts with the directory holding mixer/."""
        first = _worker_pythonpath().split(os.pathsep)[0]

        assert Path(first) == PACKAGE_SOURCE_DIR
        assert (PACKAGE_SOURCE_DIR / "mixer" / "launcher.py").is_file()

    def test_create_spark_session_returns_session(self, spark: SparkSession) -> None:
        """
        Verify create_spark_session returns a SparkSession.

        Note: only one SparkContext can be active per JVM, so getOrCreate
        returns the fixture session here.
        """
        session = create_spark_session("TestApp")

        assert session is not None
        assert isinstance(session, SparkSession)

    def test_get_spark_context_returns_context(self, spark: SparkSession) -> None:
        """Verify get_spark_context returns a SparkContext."""
        sc = get_spark_context("TestApp")

        assert hasattr(sc, "parallelize")
        assert hasattr(sc, "textFile")


class TestDataLoader:
    """Tests for data_loader.py utilities."""

    def test_get_data_path_uses_project_root(self) -> None:
        path = get_data_path("data.json")

        assert path == PROJECT_ROOT / "data" / "data.json"

    def test_absolute_path_uses_working_directory(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Relative paths follow the caller's directory, not the project root."""
        monkeypatch.chdir(tmp_path)

        assert absolute_path("json/data.json") == tmp_path.resolve() / "json" / "data.json"
        assert absolute_path(tmp_path) == tmp_path.resolve()

    def test_iter_lines_relative_path(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / "link.json").write_text("a\n", encoding="utf-8")
        monkeypatch.chdir(tmp_path)

        assert list(iter_lines("link.json")) == ["a"]

    def test_iter_lines_single_file(self, tmp_path: Path) -> None:
        """Trailing newlines (including CRLF) are stripped."""
        path = tmp_path / "data.json"
        path.write_text("first\r\nsecond\n\n", encoding="utf-8")

        assert list(iter_lines(path)) == ["first", "second", ""]

    def test_iter_lines_spark_output_directory(self, tmp_path: Path) -> None:
        """Part files are read in order and marker files are ignored."""
        (tmp_path / "part-00001").write_text("c\n", encoding="utf-8")
        (tmp_path / "part-00000").write_text("a\nb\n", encoding="utf-8")
        (tmp_path / "_SUCCESS").write_text("", encoding="utf-8")

        assert [p.name for p in list_input_files(tmp_path)] == ["part-00000", "part-00001"]
        assert list(iter_lines(tmp_path)) == ["a", "b", "c"]

    def test_missing_input_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            list(iter_lines(tmp_path / "missing.json"))

    def test_parse_json_line(self, caplog: pytest.LogCaptureFixture) -> None:
        """Objects parse; empty lines are silent; junk is logged and dropped."""
        assert parse_json_line('{"id": 1}') == {"id": 1}

        with caplog.at_level(logging.WARNING):
            assert parse_json_line("") is None
            assert not caplog.records

            assert parse_json_line("{not json") is None
            assert parse_json_line("[1, 2]") is None
        assert len(caplog.records) == 2

    def test_load_json_lines_skips_bad_lines(self, tmp_path: Path) -> None:
        path = tmp_path / "link.json"
        path.write_text('{"id": 0}\nbroken\n{"id": 1}\n\n', encoding="utf-8")

        assert [r["id"] for r in load_json_lines(path)] == [0, 1]


class TestLogging:
    """Tests for log.py utilities."""

    def test_elapsed_time_format(self) -> None:
        start = datetime(2018, 3, 1, 12, 0, 0)
        end = start + timedelta(hours=1, minutes=2, seconds=3, milliseconds=45)

        assert elapsed_time(start, end) == "01:02:03.045"
        assert elapsed_time(start, start) == "00:00:00.000"

    def test_configure_logging_writes_to_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "job.log"

        path = configure_logging("job", log_file=log_file)
        logging.getLogger("mixer.test").info("hello from the test")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert path == log_file
        assert "hello from the test" in log_file.read_text(encoding="utf-8")


class TestTextAnalysis:
    """Tests for text.py analysis shared by indexing and querying."""

    def test_stop_words(self) -> None:
        assert is_stop_word("the")
        assert is_stop_word("and")
        assert not is_stop_word("matrix")

    def test_normalize_token(self) -> None:
        """Surrounding punctuation goes away, inner punctuation rejects the token."""
        assert normalize_token("Fox!") == "fox"
        assert normalize_token('"Quick,"') == "quick"
        assert normalize_token("--") is None
        assert normalize_token("e-mail") is None
        assert normalize_token("café") is None
        assert normalize_token("2018") == "2018"

    def test_stem(self) -> None:
        assert stem("running") == "run"
        assert stem("cats") == "cat"
        assert stem("cats") == stem("cat")

    def test_positions_count_dropped_tokens(self) -> None:
        """Stop-words and punctuation-only tokens still advance the position."""
        assert analyze_field("The quick, brown fox!") == [("quick", 1), ("brown", 2), ("fox", 3)]
        assert analyze_field("hello -- world") == [("hello", 0), ("world", 2)]

    def test_analyze_field_lowercases(self) -> None:
        assert analyze_field("The Matrix") == [("matrix", 1)]

    def test_analyze_query_keeps_order_and_duplicates(self) -> None:
        terms = analyze_query("Cats chase cats")

        assert terms == [stem("cats"), stem("chase"), stem("cats")]
        assert query_frequency(terms) == {stem("cats"): 2, stem("chase"): 1}

    def test_query_of_only_stop_words_is_empty(self) -> None:
        assert analyze_query("the and of") == []

    def test_counts_use_raw_words(self) -> None:
        assert split_keyword("  the   matrix ") == ["the", "matrix"]
        assert count_tokens("the matrix, reloaded") == 3
        assert count_tokens("") == 0
