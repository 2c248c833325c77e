"""
Backup API endpoints.

Snapshot download, backup-point history and restore.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from carddex.db.database import get_session
from carddex.services.restore import restore_from_snapshot
from carddex.services.snapshot_service import (
    DEFAULT_BACKUP_POINT_LIMIT,
    create_backup_point,
    create_snapshot,
    list_backup_points,
    log_export,
)

router = APIRouter(prefix="/profiles", tags=["backup"])


class BackupPointRequest(BaseModel):
    device_id: str | None = None
    note: str | None = Field(default=None, max_length=500)


class BackupPointResponse(BaseModel):
    timestamp: int
    event_type: str
    checksum: int | None = None
    stats: dict[str, int] | None = None
    device_id: str | None = None
    note: str | None = None


class BackupPointListResponse(BaseModel):
    profile_id: str
    backup_points: list[BackupPointResponse] = Field(default_factory=list)


class ExportLogResponse(BaseModel):
    profile_id: str
    logged_at: int


class RestoreRequest(BaseModel):
    """
    Restore request.

    The snapshot is the camelCase document produced by GET /snapshot. It is
    shape-checked before anything is written.
    """

    model_config = ConfigDict(populate_by_name=True)

    snapshot: dict[str, Any]
    restore_wishlist: bool = Field(default=False, alias="restoreWishlist")
    device_id: str | None = Field(default=None, alias="deviceId")


class RestoreItemErrorModel(BaseModel):
    card_id: str
    message: str


class RestoreResponse(BaseModel):
    profile_id: str
    success: bool
    collection_restored: int
    collection_skipped: int
    wishlist_restored: int
    errors: list[RestoreItemErrorModel] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    checksum_after: int | None = None
    matches_snapshot: bool = False
    restored_at: int


@router.get("/{profile_id}/snapshot", response_model=dict[str, Any])
async def get_snapshot(
    profile_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> dict[str, Any]:
    """Current state of a profile as a versioned snapshot document."""
    snapshot = await create_snapshot(session, profile_id)
    return snapshot.to_dict()


@router.post("/{profile_id}/backup-points", response_model=BackupPointResponse)
async def post_backup_point(
    profile_id: str,
    request: BackupPointRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> BackupPointResponse:
    """Record the current checksum and counts as a known-good backup point."""
    point = await create_backup_point(session, profile_id, request.device_id, request.note)
    return BackupPointResponse(
        timestamp=point.timestamp,
        event_type=point.event_type,
        checksum=point.checksum,
        stats=point.stats,
        device_id=point.device_id,
        note=point.note,
    )


@router.get("/{profile_id}/backup-points", response_model=BackupPointListResponse)
async def get_backup_points(
    profile_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    limit: int = DEFAULT_BACKUP_POINT_LIMIT,
) -> BackupPointListResponse:
    """Backup points and exports, newest first."""
    points = await list_backup_points(session, profile_id, limit=limit)
    return BackupPointListResponse(
        profile_id=profile_id,
        backup_points=[
            BackupPointResponse(
                timestamp=p.timestamp,
                event_type=p.event_type,
                checksum=p.checksum,
                stats=p.stats,
                device_id=p.device_id,
                note=p.note,
            )
            for p in points
        ],
    )


@router.post("/{profile_id}/export-log", response_model=ExportLogResponse)
async def post_export_log(
    profile_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ExportLogResponse:
    """Record that the user downloaded a backup file."""
    logged_at = await log_export(session, profile_id)
    return ExportLogResponse(profile_id=profile_id, logged_at=logged_at)


@router.post("/{profile_id}/restore", response_model=RestoreResponse)
async def post_restore(
    profile_id: str,
    request: RestoreRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> RestoreResponse:
    """
    Merge a snapshot into the profile's live records.

    Additive only: entries missing from the snapshot are never removed.
    A response with success=false still reflects the cards that were
    written; errors lists the ones that were not.
    """
    result = await restore_from_snapshot(
        session,
        profile_id,
        request.snapshot,
        restore_wishlist=request.restore_wishlist,
        device_id=request.device_id,
    )
    return RestoreResponse(
        profile_id=profile_id,
        success=result.success,
        collection_restored=result.collection_restored,
        collection_skipped=result.collection_skipped,
        wishlist_restored=result.wishlist_restored,
        errors=[RestoreItemErrorModel(card_id=e.card_id, message=e.message) for e in result.errors],
        warnings=result.warnings,
        checksum_after=result.checksum_after,
        matches_snapshot=result.matches_snapshot,
        restored_at=result.restored_at,
    )
