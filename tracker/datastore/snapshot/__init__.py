"""
Backup and restore of the live store.

- PathSanitizer: validates user-supplied backup names
- BackupManager: consistent copies via the SQLite online backup API
- RestoreManager: transactional replacement of shared tables
"""

from .backup import BackupInfo, BackupManager
from .paths import BACKUP_NAME_PATTERN, PathSanitizer, generate_backup_name
from .restore import RestoreManager, RestoreResult

__all__ = [
    "BACKUP_NAME_PATTERN",
    "PathSanitizer",
    "generate_backup_name",
    "BackupInfo",
    "BackupManager",
    "RestoreManager",
    "RestoreResult",
]
