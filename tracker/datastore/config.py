"""
Configuration management for the tracker datastore.

All configuration is done via environment variables - no config files.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - The backup directory always lives inside the data directory
    - Legacy paths are only read, never written, by the layout migrator

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Never change the default database file name; existing deployments depend on it
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_DB_FILE_NAME = "time_tracker.db"


@dataclass(frozen=True)
class StorageConfig:
    """Local storage configuration.

    Attributes:
        data_dir: Directory holding the live store and the backup directory
        db_file_name: File name of the live store inside data_dir
        backup_dir_name: Name of the backup directory inside data_dir
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    data_dir: str = "./data"
    db_file_name: str = DEFAULT_DB_FILE_NAME
    backup_dir_name: str = "backups"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @property
    def db_path(self) -> Path:
        """Absolute path of the live store file."""
        return Path(self.data_dir).resolve() / self.db_file_name

    @property
    def backup_dir(self) -> Path:
        """Absolute path of the backup directory."""
        return Path(self.data_dir).resolve() / self.backup_dir_name

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            data_dir=os.getenv("DATA_DIR", "./data"),
            db_file_name=os.getenv("DB_FILE_NAME", DEFAULT_DB_FILE_NAME),
            backup_dir_name=os.getenv("BACKUP_DIR_NAME", "backups"),
            wal_mode=os.getenv("SQLITE_WAL_MODE", "true").lower() == "true",
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class LegacyLayoutConfig:
    """Pre-relocation on-disk layout.

    Older releases kept the store file and the backups directory in the
    process working directory.

    Attributes:
        enabled: Whether the legacy layout migrator runs at startup
        db_path: Location of the legacy store file
        backup_dir: Location of the legacy backup directory
    """

    enabled: bool = True
    db_path: str = f"./{DEFAULT_DB_FILE_NAME}"
    backup_dir: str = "./backups"

    @classmethod
    def from_env(cls) -> LegacyLayoutConfig:
        """Load configuration from environment variables."""
        return cls(
            enabled=os.getenv("LEGACY_MIGRATION_ENABLED", "true").lower() == "true",
            db_path=os.getenv("LEGACY_DB_PATH", f"./{DEFAULT_DB_FILE_NAME}"),
            backup_dir=os.getenv("LEGACY_BACKUP_DIR", "./backups"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class DatastoreConfig:
    """Complete datastore configuration.

    Attributes:
        storage: Local storage configuration
        legacy: Legacy layout configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    legacy: LegacyLayoutConfig = field(default_factory=LegacyLayoutConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> DatastoreConfig:
        """Load complete configuration from environment variables.

        Returns:
            DatastoreConfig with all sections populated from environment.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            legacy=LegacyLayoutConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    @classmethod
    def for_data_dir(cls, data_dir: str | Path, **storage_overrides) -> DatastoreConfig:
        """Build a configuration rooted at data_dir with the legacy migrator off."""
        return cls(
            storage=StorageConfig(data_dir=str(data_dir), **storage_overrides),
            legacy=LegacyLayoutConfig(enabled=False),
        )

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.storage.db_file_name.endswith(".db"):
            raise ValueError("DB_FILE_NAME must end with '.db'")

        name = self.storage.backup_dir_name
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            raise ValueError("BACKUP_DIR_NAME must be a single directory name")

        if self.storage.busy_timeout_ms < 0:
            raise ValueError("SQLITE_BUSY_TIMEOUT_MS must be non-negative")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if not os.path.exists(self.storage.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on startup."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Datastore configuration loaded",
            extra={
                "data_dir": self.storage.data_dir,
                "db_file_name": self.storage.db_file_name,
                "backup_dir": str(self.storage.backup_dir),
                "wal_mode": self.storage.wal_mode,
                "legacy_migration_enabled": self.legacy.enabled,
                "log_level": self.observability.log_level,
            },
        )
