"""
Point-in-time backups of the live store.

Backups are written with the SQLite online backup API from the shared
live connection, so the copy is transactionally consistent even while
the application is running.

Invariants:
    - A backup never overwrites an existing file
    - A failed backup leaves no partial file behind
    - Only complete files matching the backup naming pattern are listed
    - The final name holds either an empty reservation or a complete copy

How to change safely:
    - Keep the exclusive-create reservation before the copy starts
    - Copy into the .partial file and os.replace() it over the reservation
    - Keep BackupInfo.to_dict() keys stable; the HTTP API returns them as-is
"""

from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..errors import ConflictError, NotFoundError
from ..store.connection import LiveStore
from .paths import PathSanitizer, generate_backup_name, is_backup_name

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".partial"


@dataclass(frozen=True)
class BackupInfo:
    """Metadata about one backup file.

    Attributes:
        file_name: Name of the file inside the backup directory
        size_bytes: File size in bytes
        created_at: Creation time (birth time where available, else mtime)
    """

    file_name: str
    size_bytes: int
    created_at: datetime

    @classmethod
    def from_path(cls, path: Path) -> BackupInfo:
        st = path.stat()
        created = getattr(st, "st_birthtime", None) or st.st_mtime
        return cls(
            file_name=path.name,
            size_bytes=st.st_size,
            created_at=datetime.fromtimestamp(created, tz=timezone.utc),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "fileName": self.file_name,
            "sizeBytes": self.size_bytes,
            "createdAt": self.created_at.isoformat(),
        }


class BackupManager:
    """Creates, lists and deletes backup files.

    Example:
        >>> manager = BackupManager(store, "/data/backups")
        >>> info = manager.create_backup()
        >>> [b.file_name for b in manager.list_backups()]
        ['time_tracker_backup_20240131_142530.db']
    """

    def __init__(self, store: LiveStore, backup_dir: str | Path) -> None:
        self.store = store
        self.backup_dir = Path(backup_dir).resolve()
        self.sanitizer = PathSanitizer(self.backup_dir)

    def create_backup(self, file_name: str | None = None) -> BackupInfo:
        """Write a consistent copy of the live store.

        Args:
            file_name: Backup file name; generated from the current time if None

        Raises:
            ValidationError: If file_name is invalid
            ConflictError: If a backup with this name already exists
        """
        name = generate_backup_name() if file_name is None else file_name
        target = self.sanitizer.resolve(name)

        self.backup_dir.mkdir(parents=True, exist_ok=True)

        # Reserve the name; a concurrent request for the same name fails here
        try:
            with open(target, "xb"):
                pass
        except FileExistsError:
            raise ConflictError("Backup file already exists", file_name=name) from None

        # Never matches BACKUP_NAME_PATTERN, so it is not listed or resolvable
        partial = target.with_name(name + PARTIAL_SUFFIX)
        try:
            self._copy_live_store(partial)
            os.replace(partial, target)
        except Exception:
            partial.unlink(missing_ok=True)
            target.unlink(missing_ok=True)
            logger.error(
                f"Backup failed: {name}",
                exc_info=True,
                extra={"file_name": name},
            )
            raise

        info = BackupInfo.from_path(target)
        logger.info(
            f"Created backup {name}",
            extra={"file_name": name, "size_bytes": info.size_bytes},
        )
        return info

    def _copy_live_store(self, target: Path) -> None:
        """Create consistent database backup using SQLite backup API."""
        target.unlink(missing_ok=True)
        dest_conn = sqlite3.connect(str(target))
        try:
            with self.store.locked() as conn:
                conn.backup(dest_conn)
            # Backups are opened read-only later; WAL files would need creating
            dest_conn.execute("PRAGMA journal_mode = DELETE")
        finally:
            dest_conn.close()

    def list_backups(self) -> list[BackupInfo]:
        """All backups, newest first. Missing directory means no backups."""
        if not self.backup_dir.is_dir():
            return []

        backups = []
        for path in self.backup_dir.iterdir():
            if not (path.is_file() and is_backup_name(path.name)):
                continue
            try:
                info = BackupInfo.from_path(path)
            except FileNotFoundError:
                # Deleted since iterdir()
                continue
            if info.size_bytes == 0:
                # Name reserved by a backup still being written
                continue
            backups.append(info)

        backups.sort(key=lambda b: (b.created_at, b.file_name), reverse=True)
        return backups

    def delete_backup(self, file_name: str) -> None:
        """Delete one backup file.

        Raises:
            ValidationError: If file_name is invalid
            NotFoundError: If no such backup exists
            ConflictError: If the backup is still being written
        """
        path = self.sanitizer.resolve(file_name)
        try:
            if path.stat().st_size == 0:
                raise ConflictError("Backup is still being written", file_name=file_name)
            os.remove(path)
        except FileNotFoundError:
            raise NotFoundError("Backup file not found", file_name=file_name) from None

        logger.info(f"Deleted backup {file_name}", extra={"file_name": file_name})
