"""
Snapshot service.

Builds versioned, self-contained backups of a profile from live records
and keeps the backup-point history in the activity log.
"""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from carddex.clock import now_ms
from carddex.config import SNAPSHOT_VERSION
from carddex.db.operations import append_activity, get_activity, load_profile_records, require_profile
from carddex.models.records import SyncEvent
from carddex.models.snapshot import Snapshot, SnapshotStats
from carddex.services.checksum import compute_checksum, compute_stats

logger = logging.getLogger(__name__)

DEFAULT_BACKUP_POINT_LIMIT = 20


async def create_snapshot(session: AsyncSession, profile_id: str) -> Snapshot:
    """
    Create a snapshot of a profile's current state.

    Reads collection, wishlist, achievements and milestones in one session
    and stamps them with the full checksum and summary statistics.

    Raises:
        ProfileNotFoundError: If the profile does not exist
    """
    records = await load_profile_records(session, profile_id, include_milestones=True)

    snapshot = Snapshot(
        version=SNAPSHOT_VERSION,
        created_at=now_ms(),
        checksum=compute_checksum(records.collection, records.wishlist, records.achievements),
        collection=tuple(records.collection),
        wishlist=tuple(records.wishlist),
        achievements=tuple(records.achievements),
        milestones=tuple(records.milestones),
        stats=compute_stats(
            records.collection, records.wishlist, records.achievements, records.milestones
        ),
        profile_id=profile_id,
    )

    logger.info(
        "Created snapshot for %s (%d cards, checksum %d)",
        profile_id,
        snapshot.stats.collection_cards,
        snapshot.checksum,
    )
    return snapshot


@dataclass(frozen=True)
class BackupPoint:
    """A point in time where a profile's data was recorded as complete."""

    timestamp: int
    event_type: str
    checksum: int | None = None
    stats: dict[str, int] | None = None
    device_id: str | None = None
    note: str | None = None


async def create_backup_point(
    session: AsyncSession,
    profile_id: str,
    device_id: str | None = None,
    note: str | None = None,
) -> BackupPoint:
    """
    Record a verified backup point.

    Computes the current checksum and counts and appends them to the
    activity log so later drift can be traced back to a known-good state.
    """
    records = await load_profile_records(session, profile_id)
    checksum = compute_checksum(records.collection, records.wishlist, records.achievements)
    stats = compute_stats(records.collection, records.wishlist, records.achievements)

    entry = await append_activity(
        session,
        profile_id,
        SyncEvent.BACKUP_POINT_CREATED.value,
        {
            "checksum": checksum,
            "stats": _backup_stats(stats),
            "deviceId": device_id,
            "note": note,
        },
    )

    return BackupPoint(
        timestamp=entry.created_at,
        event_type=SyncEvent.BACKUP_POINT_CREATED.value,
        checksum=checksum,
        stats=_backup_stats(stats),
        device_id=device_id,
        note=note,
    )


def _backup_stats(stats: SnapshotStats) -> dict[str, int]:
    return {
        "collectionCards": stats.collection_cards,
        "totalQuantity": stats.total_quantity,
        "wishlistCards": stats.wishlist_cards,
        "achievements": stats.achievements,
    }


async def list_backup_points(
    session: AsyncSession, profile_id: str, limit: int = DEFAULT_BACKUP_POINT_LIMIT
) -> list[BackupPoint]:
    """Backup points and exports for a profile, newest first."""
    await require_profile(session, profile_id)

    entries = await get_activity(
        session,
        profile_id,
        event_types=[SyncEvent.BACKUP_POINT_CREATED.value, SyncEvent.DATA_EXPORT.value],
        limit=limit,
    )

    points: list[BackupPoint] = []
    for entry in entries:
        payload: dict[str, Any] = entry.payload or {}
        points.append(
            BackupPoint(
                timestamp=entry.created_at,
                event_type=entry.event_type or "unknown",
                checksum=payload.get("checksum"),
                stats=payload.get("stats"),
                device_id=payload.get("deviceId"),
                note=payload.get("note"),
            )
        )
    return points


async def log_export(session: AsyncSession, profile_id: str) -> int:
    """
    Record that the user downloaded a backup.

    Returns the time the export was logged, epoch milliseconds.
    """
    await require_profile(session, profile_id)
    entry = await append_activity(session, profile_id, SyncEvent.DATA_EXPORT.value)
    return entry.created_at
