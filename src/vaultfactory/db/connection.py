"""
SQLite connection management.

Every store adapter opens short-lived connections through ``Database``
instead of raw ``sqlite3.connect()``. This ensures:

  - WAL journal mode (concurrent readers + one writer)
  - busy_timeout to avoid SQLITE_BUSY under contention
  - foreign_keys enforcement on every connection
  - commit on success, rollback on error, close always
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

from ..core.errors import StoreError

logger = logging.getLogger(__name__)


def connect(
    db_path: Union[str, Path],
    *,
    row_factory: bool = False,
    busy_timeout_ms: int = 5000,
) -> sqlite3.Connection:
    """Open a SQLite connection with WAL mode and safe PRAGMAs.

    Args:
        db_path: Path to the database file.
        row_factory: If True, set conn.row_factory = sqlite3.Row.
        busy_timeout_ms: How long a writer waits on a locked database.

    Returns:
        sqlite3.Connection with WAL mode, busy_timeout, and foreign_keys.
    """
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
    conn.execute("PRAGMA foreign_keys=ON")
    if row_factory:
        conn.row_factory = sqlite3.Row
    return conn


class Database:
    """
    SQLite database file shared by the store adapters.

    Attributes:
        path: Database file (must be a real file; ``:memory:`` would give
              every connection its own empty database)
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        if str(path) == ":memory:":
            raise ValueError("Database needs a file path; use the memory stores instead")
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager yielding a connection; auto-commits and closes.

        Usage:
            with db.connection() as conn:
                rows = conn.execute(...).fetchall()

        Raises:
            StoreError: If the database cannot be opened
        """
        try:
            conn = connect(self.path, row_factory=True)
        except sqlite3.Error as exc:
            logger.error("Failed to open database %s: %s", self.path, exc)
            raise StoreError(f"failed to open database: {exc}") from exc
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
