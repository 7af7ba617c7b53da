"""
Transactional restore of the live store from a backup file.

The backup is attached read-only to the live connection and the contents
of every table present on both sides are replaced inside one transaction.
Tables that exist only in the live store keep their rows, so a backup taken
before a table was introduced can still be restored.

Restore sequence:
    1. Disable foreign-key enforcement
    2. Attach the backup read-only
    3. Compute shared tables (fail before any change if there are none)
    4. BEGIN IMMEDIATE; per shared table DELETE then INSERT ... SELECT
    5. Replace sqlite_sequence rows of the shared tables
    6. COMMIT (ROLLBACK on any error)
    7. Always detach the backup and re-enable foreign-key enforcement

Invariants:
    - Live-only tables and their sequence rows are never modified
    - A failed restore leaves the live store exactly as it was
    - Foreign-key enforcement is on after every restore attempt

How to change safely:
    - Keep PRAGMA foreign_keys outside the transaction (it is a no-op inside)
    - Copy by column intersection so older backups stay restorable
"""

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..errors import NotFoundError, RestoreFailure
from ..store.connection import LiveStore, quote_identifier
from .paths import PathSanitizer

logger = logging.getLogger(__name__)

SNAPSHOT_ALIAS = "__restore_snapshot"


@dataclass
class RestoreResult:
    """Result of a completed restore.

    Attributes:
        file_name: Backup that was restored
        tables_restored: Shared tables whose rows were replaced
        rows_restored: Table name -> number of rows copied
        live_only_tables: Tables absent from the backup (left untouched)
        foreign_key_violations: Dangling references found after commit
        duration_ms: Time spent in the restore transaction
    """

    file_name: str
    tables_restored: list[str] = field(default_factory=list)
    rows_restored: dict[str, int] = field(default_factory=dict)
    live_only_tables: list[str] = field(default_factory=list)
    foreign_key_violations: int = 0
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "fileName": self.file_name,
            "tablesRestored": list(self.tables_restored),
            "rowsRestored": dict(self.rows_restored),
            "liveOnlyTables": list(self.live_only_tables),
            "foreignKeyViolations": self.foreign_key_violations,
            "durationMs": self.duration_ms,
        }


class RestoreManager:
    """Restores shared tables of the live store from a backup file.

    Example:
        >>> manager = RestoreManager(store, "/data/backups")
        >>> result = manager.restore_from_backup("nightly.db")
        >>> result.tables_restored
        ['day_offs', 'tasks', 'time_entries', ...]
    """

    def __init__(self, store: LiveStore, backup_dir: str | Path) -> None:
        self.store = store
        self.sanitizer = PathSanitizer(backup_dir)

    def restore_from_backup(self, file_name: str) -> RestoreResult:
        """Replace shared-table contents with the backup's.

        Raises:
            ValidationError: If file_name is invalid
            NotFoundError: If the backup does not exist
            RestoreFailure: If the backup is incompatible or the copy fails
        """
        path = self.sanitizer.resolve(file_name)
        if not path.is_file():
            raise NotFoundError("Backup file not found", file_name=file_name)

        result = RestoreResult(file_name=file_name)
        start = time.time()

        with self.store.locked() as conn:
            conn.execute("PRAGMA foreign_keys = OFF")
            attached = False
            try:
                self._attach(conn, path, file_name)
                attached = True

                shared = self._shared_tables(file_name, result)
                self._copy_tables(file_name, shared, result)
            finally:
                if attached:
                    self._detach(conn)
                conn.execute("PRAGMA foreign_keys = ON")

        result.duration_ms = int((time.time() - start) * 1000)
        result.foreign_key_violations = self._check_foreign_keys()

        logger.info(
            f"Restored {len(result.tables_restored)} table(s) from {file_name}",
            extra={
                "file_name": file_name,
                "tables": len(result.tables_restored),
                "live_only_tables": result.live_only_tables,
                "duration_ms": result.duration_ms,
            },
        )
        return result

    def _shared_tables(self, file_name: str, result: RestoreResult) -> list[str]:
        live = self.store.table_names()
        try:
            snapshot = self.store.table_names(SNAPSHOT_ALIAS)
        except sqlite3.DatabaseError as e:
            raise RestoreFailure(
                "Backup file is not a readable database",
                file_name=file_name,
                incompatible=True,
            ) from e

        shared = sorted(live & snapshot)
        if not shared:
            raise RestoreFailure(
                "Backup is not compatible with the current database",
                file_name=file_name,
                incompatible=True,
            )

        result.live_only_tables = sorted(live - snapshot)
        return shared

    def _copy_tables(self, file_name: str, tables: list[str], result: RestoreResult) -> None:
        alias = quote_identifier(SNAPSHOT_ALIAS)
        try:
            with self.store.transaction() as conn:
                for table in tables:
                    snapshot_columns = set(self.store.column_names(table, SNAPSHOT_ALIAS))
                    columns = [
                        c for c in self.store.column_names(table) if c in snapshot_columns
                    ]
                    if not columns:
                        continue

                    quoted = quote_identifier(table)
                    column_list = ", ".join(quote_identifier(c) for c in columns)

                    conn.execute(f"DELETE FROM main.{quoted}")
                    cursor = conn.execute(
                        f"INSERT INTO main.{quoted} ({column_list}) "
                        f"SELECT {column_list} FROM {alias}.{quoted}"
                    )
                    result.tables_restored.append(table)
                    result.rows_restored[table] = cursor.rowcount

                if self.store.has_table("sqlite_sequence") and self.store.has_table(
                    "sqlite_sequence", SNAPSHOT_ALIAS
                ):
                    placeholders = ", ".join("?" for _ in tables)
                    conn.execute(
                        f"DELETE FROM main.sqlite_sequence WHERE name IN ({placeholders})",
                        tables,
                    )
                    conn.execute(
                        "INSERT INTO main.sqlite_sequence (name, seq) "
                        f"SELECT name, seq FROM {alias}.sqlite_sequence "
                        f"WHERE name IN ({placeholders})",
                        tables,
                    )
        except sqlite3.Error as e:
            logger.error(
                f"Restore from {file_name} rolled back: {e}",
                exc_info=True,
                extra={"file_name": file_name},
            )
            raise RestoreFailure(
                f"Restore failed and was rolled back: {e}",
                file_name=file_name,
            ) from e

    def _attach(self, conn: sqlite3.Connection, path: Path, file_name: str) -> None:
        try:
            conn.execute(
                f"ATTACH DATABASE ? AS {quote_identifier(SNAPSHOT_ALIAS)}",
                (path.as_uri() + "?mode=ro",),
            )
        except sqlite3.Error as e:
            raise RestoreFailure(
                "Backup file is not a readable database",
                file_name=file_name,
                incompatible=True,
            ) from e

    def _detach(self, conn: sqlite3.Connection) -> None:
        try:
            conn.execute(f"DETACH DATABASE {quote_identifier(SNAPSHOT_ALIAS)}")
        except sqlite3.Error as e:
            logger.error(f"Failed to detach backup: {e}", exc_info=True)

    def _check_foreign_keys(self) -> int:
        with self.store.locked() as conn:
            violations = conn.execute("PRAGMA foreign_key_check").fetchall()

        if violations:
            tables = sorted({row[0] for row in violations})
            logger.warning(
                f"Restore left {len(violations)} dangling foreign key reference(s)",
                extra={"tables": tables},
            )
        return len(violations)
