"""
Snapshot models.

A Snapshot is a frozen, self-contained copy of one profile's records plus
the checksum computed over them. Snapshots travel between devices as JSON,
so the wire shape uses the camelCase field names every client shares.

INVARIANT: A consumer compares Snapshot.version against SNAPSHOT_VERSION.
A mismatch is a compatibility warning, never a silent coercion.
"""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from carddex.config import SNAPSHOT_VERSION
from carddex.models.records import (
    VALID_VARIANTS,
    AchievementRecord,
    CardVariant,
    CollectionEntry,
    MilestoneRecord,
    WishlistEntry,
)


@dataclass(frozen=True)
class SnapshotStats:
    """Summary counts carried alongside a snapshot."""

    collection_cards: int = 0
    total_quantity: int = 0
    unique_card_ids: int = 0
    wishlist_cards: int = 0
    achievements: int = 0
    milestones: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "collectionCards": self.collection_cards,
            "totalQuantity": self.total_quantity,
            "uniqueCardIds": self.unique_card_ids,
            "wishlistCards": self.wishlist_cards,
            "achievements": self.achievements,
            "milestones": self.milestones,
        }


@dataclass(frozen=True)
class Snapshot:
    """
    Versioned backup of a profile's state.

    Attributes:
        version: Wire format version the snapshot was written with
        created_at: Creation time, epoch milliseconds
        checksum: Fingerprint over collection, wishlist and achievements
        collection: Collection entries at creation time
        wishlist: Wishlist entries at creation time
        achievements: Achievement records at creation time
        milestones: Milestone records (not checksummed)
        stats: Summary counts
        profile_id: Source profile, if known
    """

    version: int
    created_at: int
    checksum: int
    collection: tuple[CollectionEntry, ...] = ()
    wishlist: tuple[WishlistEntry, ...] = ()
    achievements: tuple[AchievementRecord, ...] = ()
    milestones: tuple[MilestoneRecord, ...] = ()
    stats: SnapshotStats = field(default_factory=SnapshotStats)
    profile_id: str | None = None

    @property
    def is_current_version(self) -> bool:
        return self.version == SNAPSHOT_VERSION

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON-compatible wire shape."""
        return {
            "version": self.version,
            "createdAt": self.created_at,
            "checksum": self.checksum,
            "profileId": self.profile_id,
            "collection": [
                {"cardId": c.card_id, "variant": c.variant, "quantity": c.quantity}
                for c in self.collection
            ],
            "wishlist": [{"cardId": w.card_id, "isPriority": w.is_priority} for w in self.wishlist],
            "achievements": [
                {
                    "achievementType": a.achievement_type,
                    "achievementKey": a.achievement_key,
                    "earnedAt": a.earned_at,
                }
                for a in self.achievements
            ],
            "milestones": [
                {
                    "milestoneKey": m.milestone_key,
                    "threshold": m.threshold,
                    "cardCountAtReach": m.card_count_at_reach,
                    "celebratedAt": m.celebrated_at,
                }
                for m in self.milestones
            ],
            "stats": self.stats.to_dict(),
        }


# =============================================================================
# WIRE SHAPE
# =============================================================================


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SnapshotCard(_WireModel):
    """
    One collection entry as it appears in a snapshot document.

    Values are checked per item at restore time, not here, so that one bad
    card does not reject the whole document.
    """

    card_id: str = Field(alias="cardId")
    variant: str | None = None
    quantity: int


class SnapshotWishlistCard(_WireModel):
    card_id: str = Field(alias="cardId")
    is_priority: bool = Field(alias="isPriority")


class SnapshotAchievement(_WireModel):
    achievement_type: str = Field(alias="achievementType")
    achievement_key: str = Field(alias="achievementKey")
    earned_at: int = Field(alias="earnedAt")


class SnapshotMilestone(_WireModel):
    milestone_key: str = Field(alias="milestoneKey")
    threshold: int
    card_count_at_reach: int = Field(alias="cardCountAtReach")
    celebrated_at: int = Field(alias="celebratedAt")


class SnapshotDocument(_WireModel):
    """Shape check for an externally supplied snapshot."""

    version: int
    checksum: int
    created_at: int = Field(default=0, alias="createdAt")
    profile_id: str | None = Field(default=None, alias="profileId")
    collection: list[SnapshotCard]
    wishlist: list[SnapshotWishlistCard] | None = None
    achievements: list[SnapshotAchievement] = Field(default_factory=list)
    milestones: list[SnapshotMilestone] = Field(default_factory=list)


@dataclass
class SnapshotValidation:
    """Result of checking a raw snapshot document."""

    document: SnapshotDocument | None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.document is not None and not self.errors


def card_value_errors(card: SnapshotCard) -> list[str]:
    """Value problems for a single snapshot card; empty when the card is usable."""
    errors: list[str] = []
    if not card.card_id or not card.card_id.strip():
        errors.append("Invalid card ID: empty")
    if card.variant is not None and card.variant not in VALID_VARIANTS:
        errors.append(f"Invalid variant: {card.variant}")
    if card.quantity < 1:
        errors.append(f"Invalid quantity: {card.quantity}")
    return errors


def version_warning(version: int) -> str | None:
    """Compatibility warning for a foreign snapshot version, if any."""
    if version == SNAPSHOT_VERSION:
        return None
    return (
        f"Snapshot version {version} may not be compatible with current version {SNAPSHOT_VERSION}"
    )


def validate_snapshot(raw: Any) -> SnapshotValidation:
    """
    Check a raw snapshot document.

    Shape problems (missing fields, wrong types) are errors and make the
    document unusable as a whole. A foreign version and per-card value
    problems are warnings: restore still runs and reports bad cards
    individually.
    """
    if not isinstance(raw, dict):
        return SnapshotValidation(document=None, errors=["Invalid snapshot format"])

    try:
        document = SnapshotDocument.model_validate(raw)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        return SnapshotValidation(document=None, errors=errors)

    warnings: list[str] = []
    warning = version_warning(document.version)
    if warning:
        warnings.append(warning)

    for index, card in enumerate(document.collection):
        for problem in card_value_errors(card):
            warnings.append(f"Card {index}: {problem}")

    return SnapshotValidation(document=document, warnings=warnings)


def snapshot_to_document(snapshot: Snapshot) -> SnapshotDocument:
    """Convert an in-process snapshot into the restore input shape."""
    return SnapshotDocument.model_validate(snapshot.to_dict())


def document_card_to_entry(card: SnapshotCard) -> CollectionEntry:
    """Normalize a usable snapshot card; variant defaults to normal."""
    return CollectionEntry(
        card_id=card.card_id,
        variant=card.variant or CardVariant.NORMAL.value,
        quantity=card.quantity,
    )
