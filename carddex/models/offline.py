"""
Shapes stored in the client-side offline cache.

Everything written to a LocalStore is serialized from these models and
validated back through them on read, so a tampered or half-written value
fails validation instead of producing a partially-parsed object.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from carddex.config import CACHE_VERSION, COLLECTION_CACHE_MAX_AGE_MS, IMAGE_CACHE_MAX_AGE_MS
from carddex.models.records import CardVariant


class CacheStatus(str, Enum):
    """Freshness state of one (profile, data class) pair."""

    EMPTY = "empty"
    FRESH = "fresh"
    STALE = "stale"
    UPDATING = "updating"
    ERROR = "error"


class DataClass(str, Enum):
    """Named categories of cached data, each with its own freshness policy."""

    COLLECTION = "collection"
    WISHLIST = "wishlist"
    CARDS = "cards"
    IMAGES = "images"

    @property
    def max_age_ms(self) -> int:
        if self is DataClass.IMAGES:
            return IMAGE_CACHE_MAX_AGE_MS
        return COLLECTION_CACHE_MAX_AGE_MS

    @property
    def metadata_field(self) -> str:
        """CacheMetadata counter updated when this class is written."""
        return _METADATA_FIELDS[self]


_METADATA_FIELDS = {
    DataClass.COLLECTION: "collection_count",
    DataClass.WISHLIST: "wishlist_count",
    DataClass.CARDS: "cards_cached",
    DataClass.IMAGES: "images_cached",
}


class _CacheModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class OfflineCollectionCard(_CacheModel):
    card_id: str = Field(alias="cardId", min_length=1)
    variant: CardVariant = CardVariant.NORMAL
    quantity: int = Field(ge=1)


class OfflineWishlistCard(_CacheModel):
    card_id: str = Field(alias="cardId", min_length=1)
    is_priority: bool = Field(default=False, alias="isPriority")


class OfflineCachedCard(_CacheModel):
    """Card catalog data kept so collection views render offline."""

    card_id: str = Field(alias="cardId", min_length=1)
    name: str
    image_small: str = Field(alias="imageSmall")
    image_large: str | None = Field(default=None, alias="imageLarge")
    set_id: str = Field(alias="setId")
    rarity: str | None = None
    types: list[str] | None = None


class CacheMetadata(_CacheModel):
    """
    Per-profile bookkeeping, rewritten on every local write.

    last_updated is epoch milliseconds; 0 means nothing has been cached.
    """

    version: int = CACHE_VERSION
    last_updated: int = Field(default=0, alias="lastUpdated")
    collection_count: int = Field(default=0, alias="collectionCount")
    wishlist_count: int = Field(default=0, alias="wishlistCount")
    cards_cached: int = Field(default=0, alias="cardsCached")
    images_cached: int = Field(default=0, alias="imagesCached")
    profile_id: str | None = Field(default=None, alias="profileId")


# --- Stored envelopes, one per data class ---


class StoredCollection(_CacheModel):
    items: list[OfflineCollectionCard]
    timestamp: int = 0


class StoredWishlist(_CacheModel):
    items: list[OfflineWishlistCard]
    timestamp: int = 0


class StoredCards(_CacheModel):
    items: list[OfflineCachedCard]
    timestamp: int = 0


class StoredImages(_CacheModel):
    """URLs handed to the background image agent."""

    items: list[str]
    timestamp: int = 0


STORED_MODELS: dict[DataClass, type[_CacheModel]] = {
    DataClass.COLLECTION: StoredCollection,
    DataClass.WISHLIST: StoredWishlist,
    DataClass.CARDS: StoredCards,
    DataClass.IMAGES: StoredImages,
}
