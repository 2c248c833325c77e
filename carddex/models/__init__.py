from carddex.models.failure import (
    CarddexError,
    CorruptPayloadError,
    FailureDetail,
    FailureKind,
    MalformedSnapshotError,
    ProfileNotFoundError,
    StorageUnavailableError,
    StorageWriteError,
)
from carddex.models.offline import (
    CacheMetadata,
    CacheStatus,
    DataClass,
    OfflineCachedCard,
    OfflineCollectionCard,
    OfflineWishlistCard,
)
from carddex.models.records import (
    VALID_VARIANTS,
    AchievementRecord,
    CardVariant,
    CollectionEntry,
    DeviceType,
    MilestoneRecord,
    ProfileRecords,
    SyncEvent,
    WishlistEntry,
)
from carddex.models.snapshot import (
    Snapshot,
    SnapshotDocument,
    SnapshotStats,
    SnapshotValidation,
    validate_snapshot,
)

__all__ = [
    "AchievementRecord",
    "CacheMetadata",
    "CacheStatus",
    "CardVariant",
    "CarddexError",
    "CollectionEntry",
    "CorruptPayloadError",
    "DataClass",
    "DeviceType",
    "FailureDetail",
    "FailureKind",
    "MalformedSnapshotError",
    "MilestoneRecord",
    "OfflineCachedCard",
    "OfflineCollectionCard",
    "OfflineWishlistCard",
    "ProfileNotFoundError",
    "ProfileRecords",
    "Snapshot",
    "SnapshotDocument",
    "SnapshotStats",
    "SnapshotValidation",
    "StorageUnavailableError",
    "StorageWriteError",
    "SyncEvent",
    "VALID_VARIANTS",
    "WishlistEntry",
    "validate_snapshot",
]
