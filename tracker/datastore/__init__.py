"""
Tracker Datastore - lifecycle manager for the time-tracker SQLite store.

This package owns the embedded relational store behind the time-tracking
application:
- Schema initialization (declarative, idempotent)
- Additive schema migration detected by introspection
- Consistent backups using the SQLite online backup API
- Transactional restore of shared tables from a backup
- One-time relocation of the legacy on-disk layout

Architecture:
    ┌──────────────┐     ┌──────────────┐     ┌──────────────────┐
    │ HTTP routes  │────▶│  Datastore   │────▶│    LiveStore     │
    │  / CLI       │     │   facade     │     │ (one connection) │
    └──────────────┘     └──────┬───────┘     └────────┬─────────┘
                                │                      │
                 ┌──────────────┼──────────────┐       ▼
                 ▼              ▼              ▼   time_tracker.db
           ┌──────────┐   ┌──────────┐   ┌──────────┐
           │  Backup  │   │ Restore  │   │  Paths   │
           └────┬─────┘   └────┬─────┘   └──────────┘
                ▼              ▲
             backups/*.db ─────┘

Invariants:
    - One connection to the live store per process
    - Backup file names always match the fixed naming pattern
    - Backups never overwrite an existing file
    - Restore touches only tables present in both the live store and the backup
    - Foreign-key enforcement is on whenever no restore is in progress

How to change safely:
    - Schema changes must be additive (new columns with defaults, new tables)
    - Every new column needs a migration step for existing databases
    - Test restore against backups produced by older schema revisions
"""

from ._version import __version__
from .errors import (
    ConflictError,
    DatastoreError,
    NotFoundError,
    RestoreFailure,
    ValidationError,
)
from .service import Datastore, open_datastore

__all__ = [
    "__version__",
    "Datastore",
    "open_datastore",
    "DatastoreError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "RestoreFailure",
]
