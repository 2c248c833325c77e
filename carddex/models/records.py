from dataclasses import dataclass, field
from enum import Enum


class CardVariant(str, Enum):
    """Printing variants a collection entry can be tracked under."""

    NORMAL = "normal"
    HOLOFOIL = "holofoil"
    REVERSE_HOLOFOIL = "reverseHolofoil"
    FIRST_EDITION_HOLOFOIL = "1stEditionHolofoil"
    FIRST_EDITION_NORMAL = "1stEditionNormal"


VALID_VARIANTS = frozenset(v.value for v in CardVariant)


class DeviceType(str, Enum):
    """Kinds of client devices that report into the registry."""

    WEB = "web"
    IOS = "ios"
    ANDROID = "android"
    DESKTOP = "desktop"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class CollectionEntry:
    """
    Owned copies of one card printing.

    Unique per (card_id, variant) within a profile. Quantity is always >= 1;
    zero or negative quantities are rejected before they reach this type.
    """

    card_id: str
    variant: str = CardVariant.NORMAL.value
    quantity: int = 1

    @property
    def key(self) -> tuple[str, str]:
        return (self.card_id, self.variant or CardVariant.NORMAL.value)


@dataclass(frozen=True)
class WishlistEntry:
    """A card the profile wants, unique per card_id."""

    card_id: str
    is_priority: bool = False


@dataclass(frozen=True)
class AchievementRecord:
    """An earned achievement. Immutable once created."""

    achievement_type: str
    achievement_key: str
    earned_at: int  # epoch milliseconds


@dataclass(frozen=True)
class MilestoneRecord:
    """A collection-size milestone the profile has reached."""

    milestone_key: str
    threshold: int
    card_count_at_reach: int
    celebrated_at: int  # epoch milliseconds


@dataclass
class ProfileRecords:
    """All checksummed records for one profile, read in a single session."""

    profile_id: str
    collection: list[CollectionEntry] = field(default_factory=list)
    wishlist: list[WishlistEntry] = field(default_factory=list)
    achievements: list[AchievementRecord] = field(default_factory=list)
    milestones: list[MilestoneRecord] = field(default_factory=list)

    def total_quantity(self) -> int:
        """Total number of owned copies across all entries."""
        return sum(entry.quantity for entry in self.collection)

    def unique_card_ids(self) -> int:
        """Number of distinct card ids, ignoring variants."""
        return len({entry.card_id for entry in self.collection})


class SyncEvent(str, Enum):
    """Event types appended to the activity log by this subsystem."""

    DEVICE_REGISTERED = "device_registered"
    BACKUP_POINT_CREATED = "backup_point_created"
    DATA_EXPORT = "data_export"
    DATA_RESTORED = "data_restored"
