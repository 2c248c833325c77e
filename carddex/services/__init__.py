"""
CardDex sync services.

Checksums, snapshots, restore, the device registry and the client-side
offline caches.
"""

from carddex.services.checksum import (
    compare_checksums,
    compute_checksum,
    compute_full_checksum,
    compute_stats,
    diff_collections,
)
from carddex.services.device_registry import (
    get_persistence_status,
    list_devices,
    record_heartbeat,
    register_device,
    verify_data_integrity,
)
from carddex.services.image_cache import BackgroundCacheAgent, extract_image_urls
from carddex.services.local_store import JsonFileLocalStore, LocalStore, MemoryLocalStore
from carddex.services.offline_cache import (
    CacheHealthReport,
    CacheUpdateResult,
    OfflineCacheManager,
    determine_cache_status,
    should_refresh_cache,
)
from carddex.services.restore import (
    Insert,
    Keep,
    Overwrite,
    RestoreResult,
    merge_collections,
    restore_from_snapshot,
)
from carddex.services.snapshot_service import (
    create_backup_point,
    create_snapshot,
    list_backup_points,
    log_export,
)

__all__ = [
    "BackgroundCacheAgent",
    "CacheHealthReport",
    "CacheUpdateResult",
    "Insert",
    "JsonFileLocalStore",
    "Keep",
    "LocalStore",
    "MemoryLocalStore",
    "OfflineCacheManager",
    "Overwrite",
    "RestoreResult",
    "compare_checksums",
    "compute_checksum",
    "compute_full_checksum",
    "compute_stats",
    "create_backup_point",
    "create_snapshot",
    "determine_cache_status",
    "diff_collections",
    "extract_image_urls",
    "get_persistence_status",
    "list_backup_points",
    "list_devices",
    "log_export",
    "merge_collections",
    "record_heartbeat",
    "register_device",
    "restore_from_snapshot",
    "should_refresh_cache",
    "verify_data_integrity",
]
