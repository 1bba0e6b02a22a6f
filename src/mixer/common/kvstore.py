"""
String key-value store shared by the importer and the searcher.

The store is a single SQLite file with one ``kv`` table. Values are stored as
text: postings as JSON arrays, statistics and ranks as their decimal string.

Writers share one connection guarded by a lock, so the four import loaders
can run on separate threads against the same handle. A read-only store hands
each thread its own connection, so concurrent queries never wait on each other.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from types import TracebackType

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Key schema
# ---------------------------------------------------------------------------

DOC_COUNT_KEY = "__docCount"
MAX_PAGERANK_KEY = "__docMaxPR"


def doc_title_key(doc_id: int) -> str:
    return f"__docId_{doc_id}"


def doc_length_key(doc_id: int, field_id: int) -> str:
    return f"__docLength_{doc_id}_{field_id}"


def avg_doc_length_key(field_id: int) -> str:
    return f"__avgDocLength_{field_id}"


def doc_pagerank_key(doc_id: int) -> str:
    return f"__docPR_{doc_id}"


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

_CREATE_TABLE = "CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL) WITHOUT ROWID"
_SELECT_VALUE = "SELECT value FROM kv WHERE key = ?"
_UPSERT_VALUE = "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)"


class KeyValueStore:
    """Thread-safe string key-value store on top of SQLite."""

    def __init__(self, db_path: str | Path, read_only: bool = False, commit_every: int = 5000):
        self.db_path = Path(db_path)
        self.read_only = read_only
        self.commit_every = commit_every
        self._lock = threading.Lock()
        self._local = threading.local()
        self._readers: list[sqlite3.Connection] = []
        self._pending = 0

        if read_only:
            if not self.db_path.is_file():
                raise FileNotFoundError(f"key-value store does not exist: {self.db_path}")
            self._writer = None
        else:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._writer = sqlite3.connect(self.db_path, check_same_thread=False)
            self._writer.execute("PRAGMA journal_mode=WAL")
            self._writer.execute("PRAGMA synchronous=NORMAL")
            self._writer.execute(_CREATE_TABLE)
            self._writer.commit()

        logger.debug("Opened key-value store %s (read_only=%s)", self.db_path, read_only)

    def _reader(self) -> sqlite3.Connection:
        """Thread-local read-only connection."""
        conn = getattr(self._local, "connection", None)
        if conn is None:
            conn = sqlite3.connect(f"file:{self.db_path}?mode=ro", uri=True, check_same_thread=False)
            self._local.connection = conn
            with self._lock:
                self._readers.append(conn)
        return conn

    def get(self, key: str) -> str | None:
        if self._writer is None:
            row = self._reader().execute(_SELECT_VALUE, (key,)).fetchone()
        else:
            with self._lock:
                row = self._writer.execute(_SELECT_VALUE, (key,)).fetchone()
        return row[0] if row is not None else None

    def put(self, key: str, value: object) -> None:
        if self._writer is None:
            raise sqlite3.OperationalError(f"key-value store {self.db_path} is read-only")

        with self._lock:
            self._writer.execute(_UPSERT_VALUE, (key, str(value)))
            self._pending += 1
            if self._pending >= self.commit_every:
                self._writer.commit()
                self._pending = 0

    def commit(self) -> None:
        if self._writer is None:
            return
        with self._lock:
            self._writer.commit()
            self._pending = 0

    def close(self) -> None:
        self.commit()
        with self._lock:
            for conn in self._readers:
                conn.close()
            self._readers.clear()
            if self._writer is not None:
                self._writer.close()
                self._writer = None

    def __enter__(self) -> "KeyValueStore":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
