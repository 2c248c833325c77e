"""
Device registry.

Records which devices touch a profile and lets a device compare the
checksum it computed locally against one recomputed from the
authoritative records.

Registrations are appended to the activity log, never deduplicated: the
same device id registering again (a reinstall, a cleared browser) is a new
entry in the audit trail. Views that need one row per device fold the log
at read time.

Drift is informational. A heartbeat that reports in_sync=False never
triggers reconciliation; the caller decides whether to pull a fresh
snapshot or push a restore.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from carddex.clock import now_ms
from carddex.db.operations import (
    append_activity,
    get_activity,
    load_profile_records,
    require_profile,
)
from carddex.models.records import DeviceType, SyncEvent
from carddex.models.snapshot import SnapshotStats
from carddex.services.checksum import compute_checksum, compute_stats

logger = logging.getLogger(__name__)

# Events that count as the profile having been synced from some device
_SYNC_EVENTS = (
    SyncEvent.DEVICE_REGISTERED.value,
    SyncEvent.BACKUP_POINT_CREATED.value,
    SyncEvent.DATA_RESTORED.value,
)


@dataclass(frozen=True)
class DeviceRegistration:
    device_id: str
    device_type: str
    registered_at: int


@dataclass(frozen=True)
class HeartbeatResult:
    device_id: str
    server_checksum: int
    in_sync: bool
    timestamp: int


@dataclass
class DeviceSummary:
    """One device folded out of the registration log."""

    device_id: str
    device_type: str
    device_name: str | None
    app_version: str | None
    first_seen: int
    last_seen: int
    registrations: int = 1


async def register_device(
    session: AsyncSession,
    profile_id: str,
    device_id: str,
    device_type: DeviceType | str = DeviceType.UNKNOWN,
    device_name: str | None = None,
    app_version: str | None = None,
) -> DeviceRegistration:
    """
    Append a device registration to the profile's activity log.

    Raises:
        ProfileNotFoundError: If the profile does not exist
        ValueError: If device_type is not a known device type
    """
    kind = DeviceType(device_type).value
    await require_profile(session, profile_id)

    entry = await append_activity(
        session,
        profile_id,
        SyncEvent.DEVICE_REGISTERED.value,
        {
            "deviceId": device_id,
            "deviceType": kind,
            "deviceName": device_name,
            "appVersion": app_version,
        },
    )

    logger.info("Registered %s device %s for %s", kind, device_id, profile_id)
    return DeviceRegistration(device_id=device_id, device_type=kind, registered_at=entry.created_at)


async def record_heartbeat(
    session: AsyncSession,
    profile_id: str,
    device_id: str,
    client_checksum: int | None = None,
) -> HeartbeatResult:
    """
    Compare a client-reported checksum with the authoritative one.

    The server checksum is recomputed on every call. No state is written;
    the call is safe to make as often as the client likes. A missing client
    checksum is reported as in sync.

    Raises:
        ProfileNotFoundError: If the profile does not exist
    """
    records = await load_profile_records(session, profile_id)
    server_checksum = compute_checksum(records.collection, records.wishlist, records.achievements)
    in_sync = client_checksum is None or client_checksum == server_checksum

    if not in_sync:
        logger.info(
            "Checksum drift on device %s for %s: client %d, server %d",
            device_id,
            profile_id,
            client_checksum,
            server_checksum,
        )

    return HeartbeatResult(
        device_id=device_id,
        server_checksum=server_checksum,
        in_sync=in_sync,
        timestamp=now_ms(),
    )


async def list_devices(session: AsyncSession, profile_id: str) -> list[DeviceSummary]:
    """
    Devices that have registered for a profile, most recently seen first.

    Later registrations of the same device id update the name, version and
    type shown for it.
    """
    await require_profile(session, profile_id)
    entries = await get_activity(
        session, profile_id, event_types=[SyncEvent.DEVICE_REGISTERED.value]
    )

    devices: dict[str, DeviceSummary] = {}
    # Oldest first, so later registrations overwrite display fields
    for entry in reversed(entries):
        payload: dict[str, Any] = entry.payload or {}
        device_id = payload.get("deviceId")
        if not device_id:
            continue

        summary = devices.get(device_id)
        if summary is None:
            devices[device_id] = DeviceSummary(
                device_id=device_id,
                device_type=payload.get("deviceType") or DeviceType.UNKNOWN.value,
                device_name=payload.get("deviceName"),
                app_version=payload.get("appVersion"),
                first_seen=entry.created_at,
                last_seen=entry.created_at,
            )
            continue

        summary.registrations += 1
        summary.last_seen = entry.created_at
        summary.device_type = payload.get("deviceType") or summary.device_type
        summary.device_name = payload.get("deviceName") or summary.device_name
        summary.app_version = payload.get("appVersion") or summary.app_version

    return sorted(devices.values(), key=lambda d: d.last_seen, reverse=True)


# --- Integrity verification ---


@dataclass
class IntegrityReport:
    is_valid: bool
    current_checksum: int
    current_stats: SnapshotStats
    discrepancies: list[str] = field(default_factory=list)
    verified_at: int = 0


async def verify_data_integrity(
    session: AsyncSession,
    profile_id: str,
    expected_checksum: int,
    expected_stats: dict[str, int] | None = None,
) -> IntegrityReport:
    """
    Check the live records against a checksum (and optional counts) a client holds.

    expected_stats keys: collectionCards, totalQuantity, wishlistCards, achievements.
    """
    records = await load_profile_records(session, profile_id)
    checksum = compute_checksum(records.collection, records.wishlist, records.achievements)
    stats = compute_stats(records.collection, records.wishlist, records.achievements)

    discrepancies: list[str] = []
    if checksum != expected_checksum:
        discrepancies.append(f"Checksum mismatch: expected {expected_checksum}, got {checksum}")

    if expected_stats:
        checks = [
            ("collectionCards", "Collection card count", stats.collection_cards),
            ("totalQuantity", "Total quantity", stats.total_quantity),
            ("wishlistCards", "Wishlist card count", stats.wishlist_cards),
            ("achievements", "Achievement count", stats.achievements),
        ]
        for key, label, actual in checks:
            expected = expected_stats.get(key)
            if expected is not None and expected != actual:
                discrepancies.append(f"{label} mismatch: expected {expected}, got {actual}")

    return IntegrityReport(
        is_valid=not discrepancies,
        current_checksum=checksum,
        current_stats=stats,
        discrepancies=discrepancies,
        verified_at=now_ms(),
    )


@dataclass
class PersistenceStatus:
    profile_id: str
    health: str
    checksum: int
    stats: SnapshotStats
    last_activity: int | None
    last_sync: int | None
    device_count: int


async def get_persistence_status(session: AsyncSession, profile_id: str) -> PersistenceStatus:
    """Health, checksum and sync recency for a profile."""
    records = await load_profile_records(session, profile_id)
    checksum = compute_checksum(records.collection, records.wishlist, records.achievements)
    stats = compute_stats(records.collection, records.wishlist, records.achievements)

    latest = await get_activity(session, profile_id, limit=1)
    last_sync = await get_activity(session, profile_id, event_types=_SYNC_EVENTS, limit=1)
    devices = await list_devices(session, profile_id)

    return PersistenceStatus(
        profile_id=profile_id,
        health="healthy" if records.collection else "empty",
        checksum=checksum,
        stats=stats,
        last_activity=latest[0].created_at if latest else None,
        last_sync=last_sync[0].created_at if last_sync else None,
        device_count=len(devices),
    )
