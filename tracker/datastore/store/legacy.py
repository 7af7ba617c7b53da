"""
One-time relocation of the legacy on-disk layout.

Releases before the data directory existed kept time_tracker.db and the
backups/ directory in the working directory of the process. On startup,
before the live store is opened, LegacyLayoutMigrator moves those files
into the current layout.

Invariants:
    - Never overwrites a file in the current layout
    - Never deletes data; only empty legacy directories are removed
    - Must run before the live store connection is opened
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# SQLite files that travel with the main store file
SIDECAR_SUFFIXES = ("-wal", "-shm")


@dataclass
class LegacyMoveResult:
    """What the migrator moved.

    Attributes:
        store_moved: True if the legacy store file was relocated
        backups_moved: File names moved into the current backup directory
        backups_skipped: File names left behind because the destination exists
    """

    store_moved: bool = False
    backups_moved: list[str] = field(default_factory=list)
    backups_skipped: list[str] = field(default_factory=list)


class LegacyLayoutMigrator:
    """Moves the legacy store file and backup directory into place.

    Example:
        >>> migrator = LegacyLayoutMigrator(
        ...     legacy_db_path="./time_tracker.db",
        ...     legacy_backup_dir="./backups",
        ...     db_path="/data/time_tracker.db",
        ...     backup_dir="/data/backups",
        ... )
        >>> migrator.run()
    """

    def __init__(
        self,
        legacy_db_path: str | Path,
        legacy_backup_dir: str | Path,
        db_path: str | Path,
        backup_dir: str | Path,
    ) -> None:
        self.legacy_db_path = Path(legacy_db_path).resolve()
        self.legacy_backup_dir = Path(legacy_backup_dir).resolve()
        self.db_path = Path(db_path).resolve()
        self.backup_dir = Path(backup_dir).resolve()

    def run(self) -> LegacyMoveResult:
        result = LegacyMoveResult()
        result.store_moved = self._move_store()
        self._move_backups(result)
        return result

    def _move_store(self) -> bool:
        if self.legacy_db_path == self.db_path:
            return False
        if not self.legacy_db_path.is_file() or self.db_path.exists():
            return False

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(self.legacy_db_path), str(self.db_path))

        for suffix in SIDECAR_SUFFIXES:
            source = self.legacy_db_path.with_name(self.legacy_db_path.name + suffix)
            target = self.db_path.with_name(self.db_path.name + suffix)
            if source.is_file() and not target.exists():
                shutil.move(str(source), str(target))

        logger.info(
            "Moved legacy store into data directory",
            extra={"from": str(self.legacy_db_path), "to": str(self.db_path)},
        )
        return True

    def _move_backups(self, result: LegacyMoveResult) -> None:
        if self.legacy_backup_dir == self.backup_dir or not self.legacy_backup_dir.is_dir():
            return

        self.backup_dir.mkdir(parents=True, exist_ok=True)

        for source in sorted(self.legacy_backup_dir.iterdir()):
            if not source.is_file():
                continue
            target = self.backup_dir / source.name
            if target.exists():
                result.backups_skipped.append(source.name)
                continue
            shutil.move(str(source), str(target))
            result.backups_moved.append(source.name)

        if result.backups_moved or result.backups_skipped:
            logger.info(
                f"Moved {len(result.backups_moved)} legacy backup(s), "
                f"skipped {len(result.backups_skipped)}",
                extra={"legacy_backup_dir": str(self.legacy_backup_dir)},
            )

        if not any(self.legacy_backup_dir.iterdir()):
            self.legacy_backup_dir.rmdir()
            logger.info(
                "Removed empty legacy backup directory",
                extra={"legacy_backup_dir": str(self.legacy_backup_dir)},
            )
