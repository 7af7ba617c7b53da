"""
Live store access, schema and migrations.

- LiveStore: the single shared SQLite connection
- SchemaInitializer: declarative, idempotent schema
- MigrationRunner: additive changes for databases from older releases
- LegacyLayoutMigrator: relocation of the pre-data-directory layout
"""

from .connection import LiveStore, StoreClosedError, quote_identifier
from .legacy import LegacyLayoutMigrator, LegacyMoveResult
from .migrations import DEFAULT_STEPS, MigrationReport, MigrationRunner, MigrationStep
from .schema import SchemaInitializer

__all__ = [
    "LiveStore",
    "StoreClosedError",
    "quote_identifier",
    "SchemaInitializer",
    "MigrationRunner",
    "MigrationStep",
    "MigrationReport",
    "DEFAULT_STEPS",
    "LegacyLayoutMigrator",
    "LegacyMoveResult",
]
