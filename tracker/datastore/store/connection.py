"""
Live store handle for the tracker datastore.

The LiveStore owns the single SQLite connection used by the whole process.
It is constructed once at startup and passed by reference to the schema
initializer, migration runner, backup manager and restore manager.

Invariants:
    - Exactly one connection per LiveStore, opened in autocommit mode
    - Every statement runs while holding the store lock
    - Foreign-key enforcement is enabled when the connection is opened
    - Transactions are explicit (BEGIN ... COMMIT / ROLLBACK)

How to change safely:
    - Keep connection pragmas in _configure(); backup and restore rely on them
    - Never hand the raw connection to code that does not hold the lock
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class StoreClosedError(RuntimeError):
    """The live store connection is not open."""

    pass


def quote_identifier(name: str) -> str:
    """Quote an SQLite identifier (table, column, schema alias)."""
    return '"' + name.replace('"', '""') + '"'


class LiveStore:
    """Process-wide handle on the live SQLite database.

    Thread safety:
        One connection is shared across threads (check_same_thread=False).
        A re-entrant lock serializes all access, so callers observe
        synchronous, one-at-a-time statement execution.

    Example:
        >>> store = LiveStore("/var/lib/tracker/time_tracker.db")
        >>> store.open()
        >>> with store.transaction() as conn:
        ...     conn.execute("INSERT INTO day_offs (date) VALUES (?)", ("2024-12-25",))
        >>> store.close()
    """

    def __init__(
        self,
        db_path: str | Path,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the live store.

        Args:
            db_path: Path to the SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.db_path = Path(db_path).resolve()
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def __enter__(self) -> LiveStore:
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> None:
        """Open the connection, creating the database file if needed."""
        with self._lock:
            if self._conn is not None:
                return

            self.db_path.parent.mkdir(parents=True, exist_ok=True)

            # URI mode so snapshots can later be attached with mode=ro
            conn = sqlite3.connect(
                self.db_path.as_uri(),
                uri=True,
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row

            try:
                self._configure(conn)
            except sqlite3.Error:
                conn.close()
                raise

            self._conn = conn
            logger.info("Opened live store", extra={"db_path": str(self.db_path)})

    def _configure(self, conn: sqlite3.Connection) -> None:
        conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
        if self.wal_mode:
            conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        conn.execute("PRAGMA foreign_keys = ON")

    def close(self) -> None:
        """Close the connection if open."""
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
            logger.info("Closed live store", extra={"db_path": str(self.db_path)})

    @contextmanager
    def locked(self) -> Iterator[sqlite3.Connection]:
        """Hold the store lock and yield the shared connection.

        Raises:
            StoreClosedError: If the store has not been opened
        """
        with self._lock:
            if self._conn is None:
                raise StoreClosedError(f"Live store is not open: {self.db_path.name}")
            yield self._conn

    @contextmanager
    def transaction(self, mode: str = "IMMEDIATE") -> Iterator[sqlite3.Connection]:
        """Run a block inside a single transaction.

        Commits on normal exit, rolls back and re-raises on any exception.

        Args:
            mode: BEGIN mode (DEFERRED, IMMEDIATE or EXCLUSIVE)
        """
        if mode not in ("DEFERRED", "IMMEDIATE", "EXCLUSIVE"):
            raise ValueError(f"Invalid transaction mode: {mode}")

        with self.locked() as conn:
            conn.execute(f"BEGIN {mode}")
            try:
                yield conn
                conn.execute("COMMIT")
            except Exception:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    def execute(self, sql: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        """Execute a single statement and fetch its rows under the store lock."""
        with self.locked() as conn:
            return conn.execute(sql, params).fetchall()

    # --- Introspection ---

    def table_names(self, schema: str = "main") -> set[str]:
        """Names of user tables in a schema (internal sqlite_* tables excluded)."""
        with self.locked() as conn:
            cursor = conn.execute(
                f"SELECT name FROM {quote_identifier(schema)}.sqlite_master "
                "WHERE type = 'table' AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\'"
            )
            return {row[0] for row in cursor.fetchall()}

    def has_table(self, table: str, schema: str = "main") -> bool:
        with self.locked() as conn:
            cursor = conn.execute(
                f"SELECT 1 FROM {quote_identifier(schema)}.sqlite_master "
                "WHERE type = 'table' AND name = ?",
                (table,),
            )
            return cursor.fetchone() is not None

    def column_names(self, table: str, schema: str = "main") -> list[str]:
        """Column names of a table in declaration order (empty if no such table)."""
        with self.locked() as conn:
            cursor = conn.execute(
                f"PRAGMA {quote_identifier(schema)}.table_info({quote_identifier(table)})"
            )
            return [row["name"] for row in cursor.fetchall()]

    def has_index(self, index: str) -> bool:
        with self.locked() as conn:
            cursor = conn.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'index' AND name = ?",
                (index,),
            )
            return cursor.fetchone() is not None

    def foreign_keys_enabled(self) -> bool:
        with self.locked() as conn:
            return bool(conn.execute("PRAGMA foreign_keys").fetchone()[0])

    def attached_databases(self) -> list[str]:
        """Schema names currently attached, including main."""
        with self.locked() as conn:
            return [row["name"] for row in conn.execute("PRAGMA database_list").fetchall()]

    def schema_dump(self) -> list[tuple[str, str, str, str | None]]:
        """All schema objects as (type, name, tbl_name, sql), sorted by name."""
        with self.locked() as conn:
            cursor = conn.execute(
                "SELECT type, name, tbl_name, sql FROM sqlite_master ORDER BY type, name"
            )
            return [tuple(row) for row in cursor.fetchall()]
