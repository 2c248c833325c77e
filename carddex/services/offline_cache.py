"""
Offline cache manager.

Client-resident mirror of profile data with TTL-based freshness and
health reporting. Sits on top of a synchronous LocalStore and owns the
key layout:

    carddex:v{CACHE_VERSION}:{data_class}:{profile_id}
    carddex:v{CACHE_VERSION}:meta:{profile_id}

Bumping CACHE_VERSION orphans every old-format key; there is no
migration code.

Status per (profile, data class):

    empty --save--> fresh --age > max_age--> stale --save--> fresh
    any --store failure or corrupt payload--> error (until clear or a successful save)
    begin_refresh() marks a pair as updating until the next save

updating and write-failure error live in memory only, per manager instance.

Nothing here raises to the caller. Writes return False, reads return None,
and an unusable store degrades the manager to server-only mode.
"""

import logging
import math
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from carddex.clock import now_ms
from carddex.config import (
    CACHE_KEY_PREFIX,
    CACHE_VERSION,
    COLLECTION_CACHE_MAX_AGE_MS,
    STORAGE_LIMIT_BYTES,
    settings,
)
from carddex.models.failure import CorruptPayloadError, StorageUnavailableError
from carddex.models.offline import (
    STORED_MODELS,
    CacheMetadata,
    CacheStatus,
    DataClass,
    OfflineCachedCard,
    OfflineCollectionCard,
    OfflineWishlistCard,
)
from carddex.services.local_store import (
    JsonFileLocalStore,
    LocalStore,
    is_store_available,
    utf16_size,
)

logger = logging.getLogger(__name__)

# Matches keys written under any cache version, so a global reset also
# sweeps up orphaned old-format keys.
_ANY_VERSION_KEY = re.compile(r"^carddex:v\d+:")

_META_SEGMENT = "meta"


def cache_key(data_class: DataClass | str, profile_id: str) -> str:
    return f"{CACHE_KEY_PREFIX}{DataClass(data_class).value}:{profile_id}"


def metadata_key(profile_id: str) -> str:
    return f"{CACHE_KEY_PREFIX}{_META_SEGMENT}:{profile_id}"


@dataclass(frozen=True)
class CachedPayload:
    """A payload read back from the cache with the time it was written."""

    data_class: DataClass
    items: list[Any]
    timestamp: int


@dataclass
class CacheUpdateResult:
    success: bool
    items_cached: int = 0
    errors: list[str] = field(default_factory=list)
    timestamp: int = 0


@dataclass
class CacheHealthReport:
    """
    Consistency and freshness summary for one profile's cache.

    age is math.inf when nothing has ever been cached.
    """

    status: CacheStatus
    last_updated: int | None
    age: float
    is_expired: bool
    collection_count: int
    wishlist_count: int
    cards_cached: int
    images_cached: int
    storage_used: int
    storage_available: int
    errors: list[str] = field(default_factory=list)


@dataclass
class OfflineSnapshot:
    """Everything needed to render a profile's collection offline."""

    collection: list[OfflineCollectionCard]
    wishlist: list[OfflineWishlistCard]
    cards: list[OfflineCachedCard]
    metadata: CacheMetadata


# =============================================================================
# FRESHNESS
# =============================================================================


def get_cache_age(timestamp: int, now: int | None = None) -> float:
    """Age of a cache timestamp in milliseconds, or math.inf if never written."""
    if not timestamp:
        return math.inf
    return (now if now is not None else now_ms()) - timestamp


def is_cache_expired(
    timestamp: int,
    max_age: int = COLLECTION_CACHE_MAX_AGE_MS,
    now: int | None = None,
) -> bool:
    """
    True when the age is strictly greater than max_age.

    An age exactly equal to max_age is not expired.
    """
    return get_cache_age(timestamp, now) > max_age


def _status_for(timestamp: int, max_age: int, now: int | None) -> CacheStatus:
    if not timestamp:
        return CacheStatus.EMPTY
    if is_cache_expired(timestamp, max_age, now):
        return CacheStatus.STALE
    return CacheStatus.FRESH


def determine_cache_status(
    metadata: CacheMetadata,
    now: int | None = None,
    max_age: int = COLLECTION_CACHE_MAX_AGE_MS,
) -> CacheStatus:
    """Status derived from stored metadata alone: empty, stale or fresh."""
    return _status_for(metadata.last_updated, max_age, now)


# =============================================================================
# MANAGER
# =============================================================================


class OfflineCacheManager:
    """
    Reads and writes one client's offline cache.

    The store is feature-detected once at construction. A store that fails
    the probe (or None) puts the manager in server-only mode: saves return
    False and loads return None.
    """

    def __init__(
        self,
        store: LocalStore | None,
        clock: Callable[[], int] = now_ms,
        storage_limit: int = STORAGE_LIMIT_BYTES,
    ) -> None:
        self.store = store
        self.clock = clock
        self.storage_limit = storage_limit
        self.available = is_store_available(store)
        self._overrides: dict[tuple[str, DataClass], CacheStatus] = {}

        if not self.available:
            logger.warning("Local storage unavailable, offline cache running in server-only mode")

    @classmethod
    def from_path(cls, path: Path | None = None) -> "OfflineCacheManager":
        """Manager backed by a JSON file, defaulting to the configured location."""
        try:
            store: LocalStore | None = JsonFileLocalStore(path or settings.offline_cache_path)
        except StorageUnavailableError as e:
            logger.warning("Offline cache file unreadable: %s", e.detail)
            store = None
        return cls(store)

    # --- Low-level store access ---

    def _write(self, key: str, value: str) -> bool:
        if not self.available or self.store is None:
            return False
        try:
            self.store.set_item(key, value)
        except Exception as e:
            # Any store failure is a failed write, never an exception
            logger.warning("Failed to write offline cache key %s: %s", key, e)
            return False
        return True

    def _read_raw(self, key: str) -> str | None:
        if not self.available or self.store is None:
            return None
        try:
            return self.store.get_item(key)
        except Exception as e:
            logger.warning("Failed to read offline cache key %s: %s", key, e)
            return None

    def _read_model(self, key: str, model: type[BaseModel]) -> BaseModel | None:
        """
        Parse a stored value through its model.

        Raises:
            CorruptPayloadError: If the value does not parse or validate
        """
        raw = self._read_raw(key)
        if raw is None:
            return None
        try:
            return model.model_validate_json(raw)
        except ValidationError as e:
            raise CorruptPayloadError(key, f"{e.error_count()} validation error(s)") from e

    # --- Payloads ---

    def save(
        self,
        profile_id: str,
        data_class: DataClass | str,
        items: Sequence[Any],
    ) -> bool:
        """
        Write one data class for a profile and update its metadata counter.

        Items may be model instances or camelCase dicts. Never raises; any
        failure (invalid items, quota, I/O) returns False.
        """
        try:
            kind = DataClass(data_class)
            envelope = STORED_MODELS[kind].model_validate(
                {"items": list(items), "timestamp": self.clock()}
            )
        except (ValueError, TypeError) as e:
            # ValidationError is a ValueError
            logger.warning("Rejected offline cache %s payload for %s: %s", data_class, profile_id, e)
            return False

        if not self.available:
            return False

        written = self._write(
            cache_key(kind, profile_id), envelope.model_dump_json(by_alias=True)
        ) and self.update_metadata(profile_id, **{kind.metadata_field: len(envelope.items)})

        if written:
            self._overrides.pop((profile_id, kind), None)
        else:
            self._overrides[(profile_id, kind)] = CacheStatus.ERROR
        return written

    def load(self, profile_id: str, data_class: DataClass | str) -> CachedPayload | None:
        """Read one data class for a profile. Missing, corrupt or unknown content is None."""
        try:
            kind = DataClass(data_class)
            envelope = self._read_envelope(profile_id, kind)
        except ValueError as e:
            logger.warning("Unknown offline cache data class %r: %s", data_class, e)
            return None
        except CorruptPayloadError as e:
            logger.warning("Corrupt offline cache %s for %s: %s", data_class, profile_id, e.detail)
            return None
        if envelope is None:
            return None
        return CachedPayload(
            data_class=kind,
            items=list(envelope.items),  # type: ignore[attr-defined]
            timestamp=envelope.timestamp,  # type: ignore[attr-defined]
        )

    def _read_envelope(self, profile_id: str, kind: DataClass) -> BaseModel | None:
        return self._read_model(cache_key(kind, profile_id), STORED_MODELS[kind])

    def save_collection(self, profile_id: str, collection: Sequence[Any]) -> bool:
        return self.save(profile_id, DataClass.COLLECTION, collection)

    def load_collection(self, profile_id: str) -> CachedPayload | None:
        return self.load(profile_id, DataClass.COLLECTION)

    def save_wishlist(self, profile_id: str, wishlist: Sequence[Any]) -> bool:
        return self.save(profile_id, DataClass.WISHLIST, wishlist)

    def load_wishlist(self, profile_id: str) -> CachedPayload | None:
        return self.load(profile_id, DataClass.WISHLIST)

    def save_cards(self, profile_id: str, cards: Sequence[Any]) -> bool:
        return self.save(profile_id, DataClass.CARDS, cards)

    def load_cards(self, profile_id: str) -> CachedPayload | None:
        return self.load(profile_id, DataClass.CARDS)

    # --- Metadata ---

    def load_metadata(self, profile_id: str) -> CacheMetadata:
        """Stored metadata, or defaults when missing or corrupt."""
        try:
            metadata = self._read_model(metadata_key(profile_id), CacheMetadata)
        except CorruptPayloadError as e:
            logger.warning("Corrupt offline cache metadata for %s: %s", profile_id, e.detail)
            metadata = None
        if metadata is None:
            return CacheMetadata(profile_id=profile_id)
        return metadata.model_copy(update={"profile_id": profile_id})  # type: ignore[return-value]

    def save_metadata(self, profile_id: str, metadata: CacheMetadata) -> bool:
        stamped = metadata.model_copy(update={"profile_id": profile_id})
        return self._write(metadata_key(profile_id), stamped.model_dump_json(by_alias=True))

    def update_metadata(self, profile_id: str, **updates: Any) -> bool:
        """Apply field updates to the stored metadata and stamp last_updated."""
        current = self.load_metadata(profile_id)
        updated = current.model_copy(
            update={**updates, "last_updated": self.clock(), "profile_id": profile_id}
        )
        return self.save_metadata(profile_id, updated)

    def record_images_cached(self, profile_id: str, count: int) -> bool:
        """Record how many images the background agent mirrored for a profile."""
        return self.update_metadata(profile_id, images_cached=count)

    # --- Status ---

    def status(self, profile_id: str, data_class: DataClass | str) -> CacheStatus:
        kind = DataClass(data_class)
        override = self._overrides.get((profile_id, kind))
        if override is not None:
            return override

        try:
            envelope = self._read_envelope(profile_id, kind)
        except CorruptPayloadError as e:
            logger.warning("Corrupt offline cache %s for %s: %s", kind.value, profile_id, e.detail)
            return CacheStatus.ERROR
        timestamp = envelope.timestamp if envelope else 0  # type: ignore[attr-defined]
        return _status_for(timestamp, kind.max_age_ms, self.clock())

    def begin_refresh(self, profile_id: str, data_class: DataClass | str) -> None:
        """Mark a pair as updating until the next save settles it."""
        self._overrides[(profile_id, DataClass(data_class))] = CacheStatus.UPDATING

    def cancel_refresh(self, profile_id: str, data_class: DataClass | str) -> None:
        """Drop an updating mark without writing (e.g. the fetch was abandoned)."""
        key = (profile_id, DataClass(data_class))
        if self._overrides.get(key) is CacheStatus.UPDATING:
            del self._overrides[key]

    # --- Health ---

    def estimate_storage_usage(self, profile_id: str) -> int:
        """UTF-16 byte size of every value stored for a profile."""
        total = 0
        for key in self._profile_keys(profile_id):
            raw = self._read_raw(key)
            if raw:
                total += utf16_size(raw)
        return total

    def health_report(self, profile_id: str) -> CacheHealthReport:
        """
        Cross-check stored payload counts against the metadata counters.

        A mismatch is an internal consistency error, independent of any
        server checksum.
        """
        now = self.clock()
        metadata = self.load_metadata(profile_id)
        errors: list[str] = []

        if not self.available:
            errors.append("Local storage is not available")

        for kind in (DataClass.COLLECTION, DataClass.WISHLIST, DataClass.CARDS, DataClass.IMAGES):
            try:
                self._read_envelope(profile_id, kind)
            except CorruptPayloadError:
                errors.append(f"{kind.value.capitalize()} cache is corrupt")

        collection = self.load_collection(profile_id)
        wishlist = self.load_wishlist(profile_id)
        cards = self.load_cards(profile_id)

        if collection and len(collection.items) != metadata.collection_count:
            errors.append("Collection count mismatch in metadata")
        if wishlist and len(wishlist.items) != metadata.wishlist_count:
            errors.append("Wishlist count mismatch in metadata")
        if cards and len(cards.items) != metadata.cards_cached:
            errors.append("Cards cached count mismatch in metadata")

        for (pid, kind), state in self._overrides.items():
            if pid == profile_id and state is CacheStatus.ERROR:
                errors.append(f"Last write to {kind.value} cache failed")

        status = CacheStatus.ERROR if errors else determine_cache_status(metadata, now)

        return CacheHealthReport(
            status=status,
            last_updated=metadata.last_updated or None,
            age=get_cache_age(metadata.last_updated, now),
            is_expired=is_cache_expired(metadata.last_updated, now=now),
            collection_count=len(collection.items) if collection else 0,
            wishlist_count=len(wishlist.items) if wishlist else 0,
            cards_cached=len(cards.items) if cards else 0,
            images_cached=metadata.images_cached,
            storage_used=self.estimate_storage_usage(profile_id),
            storage_available=self.storage_limit,
            errors=errors,
        )

    # --- Clearing ---

    def _profile_keys(self, profile_id: str) -> list[str]:
        return [cache_key(kind, profile_id) for kind in DataClass] + [metadata_key(profile_id)]

    def clear_profile(self, profile_id: str) -> bool:
        """Remove exactly this profile's keys and in-memory states."""
        if not self.available or self.store is None:
            return False
        try:
            for key in self._profile_keys(profile_id):
                self.store.remove_item(key)
        except Exception as e:
            logger.warning("Failed to clear offline cache for %s: %s", profile_id, e)
            return False

        for key in [k for k in self._overrides if k[0] == profile_id]:
            del self._overrides[key]
        return True

    def clear_all(self) -> bool:
        """
        Global reset: remove every cache key for every profile.

        Scans all stored keys by prefix. Keys outside the cache namespace
        are left alone.
        """
        if not self.available or self.store is None:
            return False
        try:
            doomed = [key for key in self.store.keys() if _ANY_VERSION_KEY.match(key)]
            for key in doomed:
                self.store.remove_item(key)
        except Exception as e:
            logger.warning("Failed to clear offline cache: %s", e)
            return False

        self._overrides.clear()
        logger.info("Cleared offline cache (%d keys)", len(doomed))
        return True

    def get_cached_profile_ids(self) -> list[str]:
        """Profiles with metadata under the current cache version."""
        if not self.available or self.store is None:
            return []
        prefix = metadata_key("")
        return sorted(
            {key[len(prefix) :] for key in self.store.keys() if key.startswith(prefix)} - {""}
        )

    # --- Offline snapshots ---

    def create_offline_snapshot(
        self,
        profile_id: str,
        collection: Iterable[Any],
        wishlist: Iterable[Any],
        cards: Iterable[Any],
    ) -> OfflineSnapshot:
        """
        Bundle the three data classes with fresh metadata.

        images_cached starts at 0 and is filled in once the background agent
        reports back.

        Raises:
            ValidationError: If any item does not match its cached shape
        """
        collection_items = [_as_model(OfflineCollectionCard, c) for c in collection]
        wishlist_items = [_as_model(OfflineWishlistCard, w) for w in wishlist]
        card_items = [_as_model(OfflineCachedCard, c) for c in cards]

        return OfflineSnapshot(
            collection=collection_items,
            wishlist=wishlist_items,
            cards=card_items,
            metadata=CacheMetadata(
                version=CACHE_VERSION,
                last_updated=self.clock(),
                collection_count=len(collection_items),
                wishlist_count=len(wishlist_items),
                cards_cached=len(card_items),
                images_cached=0,
                profile_id=profile_id,
            ),
        )

    def save_offline_snapshot(self, profile_id: str, snapshot: OfflineSnapshot) -> CacheUpdateResult:
        errors: list[str] = []
        items_cached = 0

        parts = [
            (DataClass.COLLECTION, snapshot.collection, "Failed to save collection data"),
            (DataClass.WISHLIST, snapshot.wishlist, "Failed to save wishlist data"),
            (DataClass.CARDS, snapshot.cards, "Failed to save card data"),
        ]
        for kind, items, message in parts:
            if self.save(profile_id, kind, items):
                items_cached += len(items)
            else:
                errors.append(message)

        if not self.save_metadata(profile_id, snapshot.metadata):
            errors.append("Failed to save cache metadata")

        return CacheUpdateResult(
            success=not errors,
            items_cached=items_cached,
            errors=errors,
            timestamp=self.clock(),
        )

    def load_offline_snapshot(self, profile_id: str) -> OfflineSnapshot | None:
        """All cached data for a profile, or None when none of it is cached."""
        collection = self.load_collection(profile_id)
        wishlist = self.load_wishlist(profile_id)
        cards = self.load_cards(profile_id)

        if collection is None and wishlist is None and cards is None:
            return None

        return OfflineSnapshot(
            collection=collection.items if collection else [],
            wishlist=wishlist.items if wishlist else [],
            cards=cards.items if cards else [],
            metadata=self.load_metadata(profile_id),
        )


def _as_model(model: type[BaseModel], item: Any) -> Any:
    if isinstance(item, model):
        return item
    if isinstance(item, Mapping):
        return model.model_validate(item)
    return model.model_validate(item, from_attributes=True)


# =============================================================================
# POLICY AND DISPLAY HELPERS
# =============================================================================


def should_refresh_cache(report: CacheHealthReport) -> bool:
    return report.status in (CacheStatus.EMPTY, CacheStatus.STALE, CacheStatus.ERROR)


def storage_usage_percent(report: CacheHealthReport) -> int:
    if report.storage_available == 0:
        return 0
    # Round half up
    return math.floor(report.storage_used / report.storage_available * 100 + 0.5)


def is_storage_low(report: CacheHealthReport, threshold: int = 80) -> bool:
    return storage_usage_percent(report) >= threshold


_STATUS_MESSAGES = {
    CacheStatus.EMPTY: "No offline data cached. Connect to the internet to cache your collection.",
    CacheStatus.STALE: "Cached data may be outdated. Connect to sync latest changes.",
    CacheStatus.FRESH: "Offline data is up to date.",
    CacheStatus.UPDATING: "Updating offline cache...",
    CacheStatus.ERROR: "Error accessing offline cache.",
}


def cache_status_message(status: CacheStatus) -> str:
    return _STATUS_MESSAGES.get(status, "Unknown cache status.")


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'} ago"


def format_cache_age(age_ms: float) -> str:
    """Human-readable age, e.g. '3 hours ago'."""
    if not age_ms or math.isinf(age_ms):
        return "Never cached"

    seconds = int(age_ms // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return _plural(days, "day")
    if hours > 0:
        return _plural(hours, "hour")
    if minutes > 0:
        return _plural(minutes, "minute")
    return "Just now"


def format_storage_size(size_bytes: int) -> str:
    """Human-readable byte count, e.g. '1.5 KB'."""
    if size_bytes <= 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB"]
    size = float(size_bytes)
    exponent = 0
    while size >= 1024 and exponent < len(units) - 1:
        size /= 1024
        exponent += 1
    if exponent == 0:
        return f"{size:.0f} {units[exponent]}"
    return f"{size:.1f} {units[exponent]}"


def cache_health_summary(report: CacheHealthReport) -> str:
    if report.errors:
        return f"Cache error: {report.errors[0]}"
    if report.status is CacheStatus.EMPTY:
        return "No offline data available"

    parts = []
    if report.collection_count > 0:
        parts.append(f"{report.collection_count} cards")
    if report.wishlist_count > 0:
        parts.append(f"{report.wishlist_count} wishlist items")

    data_desc = ", ".join(parts) if parts else "No data"
    return f"{data_desc} cached {format_cache_age(report.age)}"
