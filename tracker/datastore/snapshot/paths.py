"""
Backup file name validation.

Backup names arrive from HTTP bodies and query strings. PathSanitizer is
the only place that turns such a name into a filesystem path.

Invariants:
    - Accepted names match BACKUP_NAME_PATTERN
    - Resolved paths are direct children of the backup directory
    - No filesystem access besides path resolution
"""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path
from typing import Any

from ..errors import ValidationError

STORE_EXTENSION = ".db"
BACKUP_NAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]+\.db$")
GENERATED_NAME_PREFIX = "time_tracker_backup_"


def generate_backup_name(now: datetime | None = None) -> str:
    """Default backup name, e.g. time_tracker_backup_20240131_142530.db (local time)."""
    now = now or datetime.now()
    return f"{GENERATED_NAME_PREFIX}{now.strftime('%Y%m%d_%H%M%S')}{STORE_EXTENSION}"


def is_backup_name(name: str) -> bool:
    return bool(BACKUP_NAME_PATTERN.fullmatch(name))


class PathSanitizer:
    """Resolves caller-supplied backup names inside a fixed directory.

    Example:
        >>> sanitizer = PathSanitizer("/data/backups")
        >>> sanitizer.resolve("nightly.db")
        PosixPath('/data/backups/nightly.db')
        >>> sanitizer.resolve("../time_tracker.db")
        Traceback (most recent call last):
        ...
        ValidationError: Invalid backup file name
    """

    def __init__(self, backup_dir: str | Path) -> None:
        self.backup_dir = Path(backup_dir).resolve()

    def resolve(self, file_name: Any) -> Path:
        """Validate file_name and return its absolute path in the backup directory.

        Raises:
            ValidationError: If the name is not a string, does not match the
                naming pattern, or resolves outside the backup directory
        """
        if not isinstance(file_name, str) or not file_name:
            raise ValidationError("Backup file name is required", file_name=file_name)

        if not is_backup_name(file_name):
            raise ValidationError("Invalid backup file name", file_name=file_name)

        candidate = (self.backup_dir / file_name).resolve()
        if candidate.parent != self.backup_dir:
            raise ValidationError("Invalid backup file name", file_name=file_name)

        return candidate
