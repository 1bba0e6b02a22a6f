"""
Common data loading utilities for the batch jobs and the importer.

Inputs come in two shapes: a single line-delimited file (the corpus export)
or a Spark output directory holding ``part-*`` files. Both are read through
:func:`iter_lines` so callers never care which one they were given.
"""

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent

logger = logging.getLogger(__name__)


def absolute_path(value: str | Path) -> Path:
    """
    Absolute form of a path given by a caller.

    Relative paths are taken against the caller's working directory. Spark
    runs with the project root as its working directory, so every path
    handed to a job must be absolute by the time it gets there.
    """
    return Path(value).expanduser().resolve()


def list_input_files(path: str | Path) -> list[Path]:
    """
    List the files making up an input.

    A directory is treated as Spark output: its ``part-*`` files are returned
    in name order, marker files such as ``_SUCCESS`` are ignored.

    Raises:
        FileNotFoundError: if the path does not exist
    """
    resolved = Path(path)
    if not resolved.exists():
        raise FileNotFoundError(f"input path does not exist: {resolved}")

    if resolved.is_dir():
        return sorted(p for p in resolved.iterdir() if p.is_file() and p.name.startswith("part-"))
    return [resolved]


def iter_lines(path: str | Path) -> Iterator[str]:
    """Yield every line of an input, without the trailing newline."""
    for file_path in list_input_files(path):
        with file_path.open("r", encoding="utf-8") as f:
            for line in f:
                yield line.rstrip("\r\n")


def parse_json_line(line: str) -> dict[str, Any] | None:
    """
    Parse one line of a line-delimited JSON file.

    Returns None for lines that are not a JSON object. The empty line that
    terminates an export is expected and skipped silently; anything else is
    logged.
    """
    if not line.strip():
        return None

    try:
        record = json.loads(line)
    except json.JSONDecodeError as e:
        logger.warning("Skipping malformed JSON line %r: %s", line[:200], e)
        return None

    if not isinstance(record, dict):
        logger.warning("Skipping non-object JSON line %r", line[:200])
        return None
    return record


def load_json_lines(path: str | Path) -> Iterator[dict[str, Any]]:
    """Yield every well-formed JSON object of a line-delimited file."""
    for line in iter_lines(path):
        record = parse_json_line(line)
        if record is not None:
            yield record


def get_data_path(filename: str) -> Path:
    """
    Get the full path to a file within the project's data directory.

    Args:
        filename: Data file name (e.g., "data.json")

    Returns:
        Full path to the data file
    """
    return PROJECT_ROOT / "data" / filename
