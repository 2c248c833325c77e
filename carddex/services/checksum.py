"""
Checksum engine.

Produces the deterministic fingerprint of a profile's state that every
device and the server compute independently and compare to detect drift.

Canonical form:
- collection entries render as  cardId|variant|quantity  (variant defaults to normal)
- wishlist entries render as    cardId|isPriority        (true / false)
- achievements render as        achievementType|achievementKey|earnedAt
Each list is sorted and joined with ";", and the three blocks are joined
with "||". The result is hashed with a 32-bit signed rolling hash
(hash = hash * 31 + code_unit, wrapped to 32 bits at every step, from 0).

"Character" and sort order are both defined over UTF-16 code units, the
unit the browser and mobile clients iterate over, so text outside the
Basic Multilingual Plane fingerprints identically everywhere.

INVARIANT: Same multiset of records in -> same integer out, regardless of
enumeration order. No side effects.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from carddex.clock import now_ms
from carddex.models.records import (
    AchievementRecord,
    CardVariant,
    CollectionEntry,
    MilestoneRecord,
    WishlistEntry,
)
from carddex.models.snapshot import SnapshotStats

_MASK_32 = 0xFFFFFFFF
_SIGN_BIT = 0x80000000

RECORD_SEPARATOR = ";"
BLOCK_SEPARATOR = "||"


def _utf16_units(text: str) -> Iterable[int]:
    data = text.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        yield data[i] | (data[i + 1] << 8)


def _utf16_sort_key(text: str) -> bytes:
    # Big-endian byte order compares like the code unit sequence
    return text.encode("utf-16-be", "surrogatepass")


def hash_code(text: str) -> int:
    """
    32-bit signed rolling hash over the UTF-16 code units of text.

    Returns 0 for the empty string.
    """
    h = 0
    for unit in _utf16_units(text):
        h = (h * 31 + unit) & _MASK_32
    return h - (1 << 32) if h & _SIGN_BIT else h


# --- Canonical rendering ---


def render_collection_entry(entry: CollectionEntry) -> str:
    variant = entry.variant or CardVariant.NORMAL.value
    return f"{entry.card_id}|{variant}|{entry.quantity}"


def render_wishlist_entry(entry: WishlistEntry) -> str:
    return f"{entry.card_id}|{'true' if entry.is_priority else 'false'}"


def render_achievement(record: AchievementRecord) -> str:
    return f"{record.achievement_type}|{record.achievement_key}|{record.earned_at}"


def _canonical_block(rendered: Iterable[str]) -> str:
    return RECORD_SEPARATOR.join(sorted(rendered, key=_utf16_sort_key))


def canonical_form(
    collection: Iterable[CollectionEntry],
    wishlist: Iterable[WishlistEntry] = (),
    achievements: Iterable[AchievementRecord] = (),
) -> str:
    """The exact string the full checksum is computed over."""
    return BLOCK_SEPARATOR.join(
        [
            _canonical_block(render_collection_entry(c) for c in collection),
            _canonical_block(render_wishlist_entry(w) for w in wishlist),
            _canonical_block(render_achievement(a) for a in achievements),
        ]
    )


# --- Checksums ---


def compute_checksum(
    collection: Iterable[CollectionEntry],
    wishlist: Iterable[WishlistEntry] = (),
    achievements: Iterable[AchievementRecord] = (),
) -> int:
    """Full profile fingerprint over collection, wishlist and achievements."""
    return hash_code(canonical_form(collection, wishlist, achievements))


def compute_collection_checksum(collection: Iterable[CollectionEntry]) -> int:
    """Fingerprint of the collection block alone."""
    return hash_code(_canonical_block(render_collection_entry(c) for c in collection))


def compute_wishlist_checksum(wishlist: Iterable[WishlistEntry]) -> int:
    return hash_code(_canonical_block(render_wishlist_entry(w) for w in wishlist))


def compute_achievement_checksum(achievements: Iterable[AchievementRecord]) -> int:
    return hash_code(_canonical_block(render_achievement(a) for a in achievements))


def compute_stats(
    collection: list[CollectionEntry],
    wishlist: list[WishlistEntry],
    achievements: list[AchievementRecord],
    milestones: list[MilestoneRecord] | None = None,
) -> SnapshotStats:
    """Summary counts for a set of records."""
    return SnapshotStats(
        collection_cards=len(collection),
        total_quantity=sum(c.quantity for c in collection),
        unique_card_ids=len({c.card_id for c in collection}),
        wishlist_cards=len(wishlist),
        achievements=len(achievements),
        milestones=len(milestones or []),
    )


@dataclass(frozen=True)
class ChecksumResult:
    """A checksum together with the counts it was computed over."""

    checksum: int
    stats: SnapshotStats
    timestamp: int


def compute_full_checksum(
    collection: list[CollectionEntry],
    wishlist: list[WishlistEntry],
    achievements: list[AchievementRecord],
) -> ChecksumResult:
    """Checksum plus stats, stamped with the computation time."""
    return ChecksumResult(
        checksum=compute_checksum(collection, wishlist, achievements),
        stats=compute_stats(collection, wishlist, achievements),
        timestamp=now_ms(),
    )


# --- Comparison ---


@dataclass
class DiscrepancyReport:
    """Differences between a local and a server view of the same profile."""

    is_valid: bool
    discrepancies: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


def compare_checksums(
    local_checksum: int,
    server_checksum: int,
    local_stats: SnapshotStats,
    server_stats: SnapshotStats,
) -> DiscrepancyReport:
    """
    Explain drift between a local and a server checksum.

    Informational only: nothing here triggers reconciliation.
    """
    discrepancies: list[str] = []
    suggestions: list[str] = []

    if local_checksum != server_checksum:
        discrepancies.append("Checksum mismatch between local and server data")

    if local_stats.collection_cards != server_stats.collection_cards:
        diff = server_stats.collection_cards - local_stats.collection_cards
        if diff > 0:
            discrepancies.append(f"Server has {diff} more card entries than local")
            suggestions.append("Refresh your collection to get the latest data")
        else:
            discrepancies.append(f"Local has {-diff} more card entries than server")
            suggestions.append("Some local changes may not have synced - try syncing again")

    if local_stats.total_quantity != server_stats.total_quantity:
        diff = server_stats.total_quantity - local_stats.total_quantity
        if diff > 0:
            discrepancies.append(f"Server has {diff} more total cards than local")
        else:
            discrepancies.append(f"Local has {-diff} more total cards than server")

    if local_stats.wishlist_cards != server_stats.wishlist_cards:
        discrepancies.append("Wishlist count differs between local and server")
        suggestions.append("Refresh your wishlist to sync the latest changes")

    if local_stats.achievements != server_stats.achievements:
        discrepancies.append("Achievement count differs between local and server")
        suggestions.append("Some achievements may not have synced properly")

    return DiscrepancyReport(
        is_valid=not discrepancies, discrepancies=discrepancies, suggestions=suggestions
    )


@dataclass(frozen=True)
class QuantityDifference:
    card_id: str
    variant: str
    local_quantity: int
    server_quantity: int


@dataclass
class CollectionDiff:
    """Entry-level differences between two collections."""

    only_in_local: list[CollectionEntry] = field(default_factory=list)
    only_in_server: list[CollectionEntry] = field(default_factory=list)
    quantity_differences: list[QuantityDifference] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.only_in_local or self.only_in_server or self.quantity_differences)


def diff_collections(
    local: Iterable[CollectionEntry], server: Iterable[CollectionEntry]
) -> CollectionDiff:
    """Compare two collections keyed by (card_id, variant)."""
    local_map = {entry.key: entry for entry in local}
    server_map = {entry.key: entry for entry in server}

    diff = CollectionDiff()
    for key, entry in local_map.items():
        server_entry = server_map.get(key)
        if server_entry is None:
            diff.only_in_local.append(entry)
        elif server_entry.quantity != entry.quantity:
            diff.quantity_differences.append(
                QuantityDifference(
                    card_id=key[0],
                    variant=key[1],
                    local_quantity=entry.quantity,
                    server_quantity=server_entry.quantity,
                )
            )

    diff.only_in_server = [entry for key, entry in server_map.items() if key not in local_map]
    return diff
