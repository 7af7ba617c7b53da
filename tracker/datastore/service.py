"""
Datastore facade and startup sequence.

open_datastore() performs the startup sequence in its fixed order and
returns a Datastore that exposes the backup operations used by the HTTP
API and the CLI.

Startup sequence:
    1. LegacyLayoutMigrator (before any connection exists)
    2. LiveStore.open()
    3. SchemaInitializer.initialize()
    4. MigrationRunner.run()
"""

from __future__ import annotations

import logging

from .config import DatastoreConfig
from .snapshot.backup import BackupInfo, BackupManager
from .snapshot.restore import RestoreManager, RestoreResult
from .store.connection import LiveStore
from .store.legacy import LegacyLayoutMigrator
from .store.migrations import MigrationReport, MigrationRunner
from .store.schema import SchemaInitializer

logger = logging.getLogger(__name__)


class Datastore:
    """The live store plus its backup and restore operations.

    Example:
        >>> datastore = open_datastore(DatastoreConfig.from_env())
        >>> info = datastore.create_backup()
        >>> datastore.restore_from_backup(info.file_name)
        >>> datastore.close()
    """

    def __init__(self, config: DatastoreConfig, store: LiveStore) -> None:
        self.config = config
        self.store = store
        self.backups = BackupManager(store, config.storage.backup_dir)
        self.restores = RestoreManager(store, config.storage.backup_dir)
        self.last_migration: MigrationReport | None = None

    def __enter__(self) -> Datastore:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def migrate(self) -> MigrationReport:
        """Apply the schema and any pending additive migrations."""
        SchemaInitializer(self.store).initialize()
        self.last_migration = MigrationRunner(self.store).run()
        if not self.last_migration.ok:
            logger.warning(
                "Some migration steps failed",
                extra={"failed": sorted(self.last_migration.failed)},
            )
        return self.last_migration

    def create_backup(self, file_name: str | None = None) -> BackupInfo:
        return self.backups.create_backup(file_name)

    def list_backups(self) -> list[BackupInfo]:
        return self.backups.list_backups()

    def delete_backup(self, file_name: str) -> None:
        self.backups.delete_backup(file_name)

    def restore_from_backup(self, file_name: str) -> RestoreResult:
        return self.restores.restore_from_backup(file_name)

    def close(self) -> None:
        self.store.close()


def open_datastore(config: DatastoreConfig | None = None) -> Datastore:
    """Run the startup sequence and return an open Datastore.

    Args:
        config: Configuration; loaded from the environment if None
    """
    config = config or DatastoreConfig.from_env()
    storage = config.storage

    if config.legacy.enabled:
        LegacyLayoutMigrator(
            legacy_db_path=config.legacy.db_path,
            legacy_backup_dir=config.legacy.backup_dir,
            db_path=storage.db_path,
            backup_dir=storage.backup_dir,
        ).run()

    store = LiveStore(
        storage.db_path,
        wal_mode=storage.wal_mode,
        busy_timeout_ms=storage.busy_timeout_ms,
    )
    store.open()

    datastore = Datastore(config, store)
    try:
        datastore.migrate()
    except Exception:
        store.close()
        raise

    return datastore
