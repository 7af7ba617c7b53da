"""
Error types for the tracker datastore.

This module defines all exception types raised by the datastore core:
- DatastoreError: Base exception
- ValidationError: Malformed or unsafe backup file name
- ConflictError: Backup file already exists
- NotFoundError: Referenced backup file does not exist
- RestoreFailure: Backup incompatible or restore transaction failed

Invariants:
    - All errors inherit from DatastoreError
    - Errors carry a stable code for the API layer to map to a status
    - Messages never include absolute filesystem paths
"""

from __future__ import annotations

from typing import Any


class DatastoreError(Exception):
    """Base exception for all datastore errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "DATASTORE_ERROR"
        self.details = details or {}


class ValidationError(DatastoreError):
    """Backup file name failed validation.

    Raised when:
    - Name is empty or not a string
    - Name contains characters outside [A-Za-z0-9._-]
    - Name does not end with the store extension
    - Name resolves outside the backup directory
    """

    def __init__(self, message: str, file_name: Any = None) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"file_name": file_name},
        )
        self.file_name = file_name


class ConflictError(DatastoreError):
    """A backup with the requested name already exists."""

    def __init__(self, message: str, file_name: str | None = None) -> None:
        super().__init__(
            message,
            code="CONFLICT",
            details={"file_name": file_name},
        )
        self.file_name = file_name


class NotFoundError(DatastoreError):
    """The referenced backup file does not exist."""

    def __init__(self, message: str, file_name: str | None = None) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={"file_name": file_name},
        )
        self.file_name = file_name


class RestoreFailure(DatastoreError):
    """Restore did not complete; the live store is unchanged.

    Raised when:
    - The backup shares no tables with the live store (incompatible)
    - Any statement fails while the restore transaction is open

    Attributes:
        incompatible: True when the backup was rejected before any change
    """

    def __init__(
        self,
        message: str,
        file_name: str | None = None,
        incompatible: bool = False,
    ) -> None:
        super().__init__(
            message,
            code="RESTORE_FAILED",
            details={"file_name": file_name, "incompatible": incompatible},
        )
        self.file_name = file_name
        self.incompatible = incompatible
