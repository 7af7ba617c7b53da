"""
API routes for database backup management.

Provides REST endpoints over the Datastore backup operations. Each core
call is synchronous, so it runs in the default executor and is bounded by
the configured operation timeout.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from ..errors import (
    ConflictError,
    DatastoreError,
    NotFoundError,
    RestoreFailure,
    ValidationError,
)
from ..service import Datastore
from .config import Settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Database"])


# --- Request/Response Models ---


class CreateBackupRequest(BaseModel):
    """Request to create a backup. Name is generated when omitted."""

    # Any: non-string names are rejected by the sanitizer with a 400
    file_name: Any = Field(None, alias="fileName", description="Backup file name")


class RestoreRequest(BaseModel):
    """Request to restore from a backup."""

    file_name: Any = Field(None, alias="fileName", description="Backup file name")


class BackupResponse(BaseModel):
    """Backup file metadata."""

    file_name: str = Field(..., serialization_alias="fileName")
    size_bytes: int = Field(..., serialization_alias="sizeBytes")
    created_at: str = Field(..., serialization_alias="createdAt")


class SuccessResponse(BaseModel):
    success: bool = True


class RestoreResponse(BaseModel):
    """Restore outcome."""

    success: bool = True
    file_name: str = Field(..., serialization_alias="fileName")
    tables_restored: list[str] = Field(..., serialization_alias="tablesRestored")
    live_only_tables: list[str] = Field(..., serialization_alias="liveOnlyTables")
    foreign_key_violations: int = Field(0, serialization_alias="foreignKeyViolations")


# --- Error mapping ---


def status_for_error(error: DatastoreError) -> int:
    """HTTP status code for a datastore error."""
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, ConflictError):
        return 409
    if isinstance(error, RestoreFailure) and error.incompatible:
        return 400
    return 500


# --- Dependencies ---


def get_datastore(request: Request) -> Datastore:
    """Get datastore from app state."""
    return request.app.state.datastore


def get_settings(request: Request) -> Settings:
    """Get settings from app state."""
    return request.app.state.settings


async def run_operation(settings: Settings, func: Callable[..., Any], *args: Any) -> Any:
    """Run a blocking datastore call off the event loop with a timeout.

    DatastoreError propagates to the app's exception handler. On timeout
    the worker thread keeps running; only the HTTP request is abandoned.
    """
    loop = asyncio.get_event_loop()
    try:
        return await asyncio.wait_for(
            loop.run_in_executor(None, func, *args),
            timeout=settings.operation_timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.error(
            f"Datastore operation timed out: {func.__name__}",
            extra={"timeout_seconds": settings.operation_timeout_seconds},
        )
        raise HTTPException(status_code=504, detail="Operation timed out") from None
    except DatastoreError:
        raise
    except Exception as e:
        logger.error(f"Datastore operation failed: {func.__name__}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error") from e


def _backup_to_response(info) -> BackupResponse:
    return BackupResponse(
        file_name=info.file_name,
        size_bytes=info.size_bytes,
        created_at=info.created_at.isoformat(),
    )


# --- Backup Routes ---


@router.get("/backups", response_model=list[BackupResponse])
async def list_backups(
    datastore: Datastore = Depends(get_datastore),
    settings: Settings = Depends(get_settings),
):
    """List backups, newest first."""
    backups = await run_operation(settings, datastore.list_backups)
    return [_backup_to_response(b) for b in backups]


@router.post("/backups", response_model=BackupResponse, status_code=201)
async def create_backup(
    request: CreateBackupRequest | None = None,
    datastore: Datastore = Depends(get_datastore),
    settings: Settings = Depends(get_settings),
):
    """
    Create a backup of the live database.

    Without a fileName a timestamped name is generated.
    """
    file_name = request.file_name if request is not None else None
    info = await run_operation(settings, datastore.create_backup, file_name)
    return _backup_to_response(info)


@router.delete("/backups", response_model=SuccessResponse)
async def delete_backup(
    file_name: str | None = Query(None, alias="fileName"),
    datastore: Datastore = Depends(get_datastore),
    settings: Settings = Depends(get_settings),
):
    """Delete a backup file."""
    if not file_name:
        raise ValidationError("Backup file name is required")
    await run_operation(settings, datastore.delete_backup, file_name)
    return SuccessResponse()


# --- Restore Routes ---


@router.post("/restore", response_model=RestoreResponse)
async def restore_backup(
    request: RestoreRequest,
    datastore: Datastore = Depends(get_datastore),
    settings: Settings = Depends(get_settings),
):
    """
    Restore the live database from a backup.

    Tables that exist only in the live database keep their rows.
    """
    if not request.file_name:
        raise ValidationError("Backup file name is required")

    result = await run_operation(settings, datastore.restore_from_backup, request.file_name)
    return RestoreResponse(
        file_name=result.file_name,
        tables_restored=result.tables_restored,
        live_only_tables=result.live_only_tables,
        foreign_key_violations=result.foreign_key_violations,
    )
