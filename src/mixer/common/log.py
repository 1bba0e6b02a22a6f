"""
Logging setup for the command-line entry points.

Library modules only ever call ``logging.getLogger(__name__)``; the entry
points call :func:`configure_logging` once, which writes everything to
``.logs/<name>.log`` and mirrors it on the console.
"""

import logging
from datetime import datetime
from pathlib import Path

from mixer.common.data_loader import PROJECT_ROOT

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
LOGS_DIR = PROJECT_ROOT / ".logs"


def configure_logging(
    name: str = "mixer",
    level: int = logging.INFO,
    log_file: str | Path | None = None,
) -> Path:
    """Install a file handler and a console handler on the root logger.

    Args:
        name: Log file stem, used when log_file is not given
        level: Root logger level
        log_file: Explicit log file path (overrides .logs/<name>.log)

    Returns:
        Path of the log file being written
    """
    if log_file is None:
        LOGS_DIR.mkdir(exist_ok=True)
        log_path = LOGS_DIR / f"{name}.log"
    else:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_path, encoding="utf-8"),
            logging.StreamHandler(),
        ],
        force=True,
    )
    # py4j is chatty at INFO; Spark's own logging goes through log4j2
    logging.getLogger("py4j").setLevel(logging.WARNING)
    return log_path


def elapsed_time(start: datetime, end: datetime) -> str:
    """Format the duration between two timestamps as HH:MM:SS.mmm."""
    total_ms = int((end - start).total_seconds() * 1000)
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    seconds, milliseconds = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{milliseconds:03d}"
