"""
SparkSession factory for the Mixer batch jobs.

Both jobs ship plain module-level functions (``map_document``,
``reduce_rank``, ...) to the Python workers, so every session is created with
the package source on the executors' PYTHONPATH. This works for an installed
package and a source checkout alike.

Logging is configured via conf/log4j2.properties to:
- Write INFO logs to .logs/spark.log
- Only show ERROR on console
"""

import os
from collections.abc import Mapping
from pathlib import Path

from pyspark import SparkContext
from pyspark.sql import SparkSession

from mixer.common.data_loader import PROJECT_ROOT

LOG4J2_CONFIG = PROJECT_ROOT / "conf" / "log4j2.properties"

# Directory holding the mixer package, importable by the Python workers
PACKAGE_SOURCE_DIR = Path(__file__).resolve().parent.parent.parent

# Final app name will be: APP_NAME_PREFIX-<job_name>
APP_NAME_PREFIX = "Mixer"


def _snake_to_title(snake_str: str) -> str:
    """
    Convert snake_case string to TitleCase.

    Examples:
        inverted_index -> InvertedIndex
        pagerank -> Pagerank
    """
    return "".join(word.capitalize() for word in snake_str.split("_"))


def _parse_job_identifier(job_id: str | None) -> str | None:
    """A module path (``__file__``) becomes its TitleCase stem, a name is kept."""
    if job_id is None:
        return None
    if "/" in job_id or job_id.endswith(".py"):
        return _snake_to_title(Path(job_id).stem)
    return job_id


def _build_app_name(job_name: str | None = None) -> str:
    """Build the full application name, e.g. "Mixer-InvertedIndex"."""
    if job_name:
        return f"{APP_NAME_PREFIX}-{job_name}"
    return APP_NAME_PREFIX


def _worker_pythonpath() -> str:
    """PYTHONPATH for the executors: the package source first, then the driver's own."""
    inherited = os.environ.get("PYTHONPATH", "")
    return os.pathsep.join(p for p in (str(PACKAGE_SOURCE_DIR), inherited) if p)


def create_spark_session(
    job_name: str | None = None,
    master: str = "local[*]",
    shuffle_partitions: int = 4,
    extra_conf: Mapping[str, str] | None = None,
) -> SparkSession:
    """
    Create a SparkSession for one of the batch jobs.

    Args:
        job_name: Identifier for the job. Either a file path like __file__
                  (auto-converts snake_case to TitleCase) or a direct name.
        master: Spark master URL (default: local[*] for local runs)
        shuffle_partitions: Partitions of the groupByKey shuffles
        extra_conf: Additional Spark settings, applied last

    Returns:
        Configured SparkSession instance. If a session already exists in
        this process, that session is returned.
    """
    (PROJECT_ROOT / ".logs").mkdir(exist_ok=True)
    app_name = _build_app_name(_parse_job_identifier(job_name))

    # log4j resolves .logs/spark.log against the working directory
    original_cwd = os.getcwd()
    os.chdir(PROJECT_ROOT)

    try:
        builder = (
            SparkSession.builder.appName(app_name)
            .master(master)
            .config("spark.executorEnv.PYTHONPATH", _worker_pythonpath())
            .config("spark.default.parallelism", str(shuffle_partitions))
            .config("spark.sql.shuffle.partitions", str(shuffle_partitions))
            .config("spark.driver.memory", "2g")
            .config("spark.ui.showConsoleProgress", "false")
        )

        if LOG4J2_CONFIG.exists():
            builder = builder.config(
                "spark.driver.extraJavaOptions",
                f"-Dlog4j.configurationFile=file:{LOG4J2_CONFIG}",
            )

        for key, value in (extra_conf or {}).items():
            builder = builder.config(key, value)

        spark = builder.getOrCreate()
        spark.sparkContext.setLogLevel("ERROR")
        return spark
    finally:
        os.chdir(original_cwd)


def get_spark_context(job_name: str | None = None, master: str = "local[*]") -> SparkContext:
    """Get the SparkContext of a session created by create_spark_session."""
    return create_spark_session(job_name, master).sparkContext
