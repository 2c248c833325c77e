"""
Restore reconciler.

Merges a snapshot back into a profile's live records under an
additive-only policy:

- (cardId, variant) present in both, quantities differ -> Overwrite (snapshot wins, quantity only)
- (cardId, variant) present in both, quantities equal  -> Keep (counted as skipped)
- (cardId, variant) only in the snapshot               -> Insert
- entries only in the live state are never touched

Wishlist restoration is opt-in and only inserts missing cards.

INVARIANTS:
- restore(restore(T, S), S) == restore(T, S)
- restoring never reduces the number of distinct (cardId, variant) entries
- a malformed snapshot is rejected before any mutation
- one failing card never aborts the batch; success requires zero errors
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from carddex.clock import now_ms
from carddex.config import SNAPSHOT_VERSION
from carddex.db.operations import (
    add_collection_card,
    add_wishlist_card,
    append_activity,
    get_collection_rows,
    get_wishlist_rows,
    load_profile_records,
    require_profile,
    set_collection_quantity,
)
from carddex.models.db import CollectionCardDB
from carddex.models.failure import MalformedSnapshotError
from carddex.models.records import CardVariant, CollectionEntry, SyncEvent, WishlistEntry
from carddex.models.snapshot import (
    Snapshot,
    SnapshotDocument,
    card_value_errors,
    document_card_to_entry,
    snapshot_to_document,
    validate_snapshot,
    version_warning,
)
from carddex.services.checksum import compute_checksum

logger = logging.getLogger(__name__)


# =============================================================================
# MERGE DECISIONS
# =============================================================================


@dataclass(frozen=True)
class Insert:
    """The record is absent from the live state and will be added."""

    entry: CollectionEntry | WishlistEntry


@dataclass(frozen=True)
class Overwrite:
    """The live quantity differs; the snapshot quantity replaces it."""

    entry: CollectionEntry
    previous_quantity: int


@dataclass(frozen=True)
class Keep:
    """The live record already matches (or must not be changed)."""

    entry: CollectionEntry | WishlistEntry


MergeDecision = Insert | Overwrite | Keep


def decide_collection_merge(live_quantity: int | None, incoming: CollectionEntry) -> MergeDecision:
    """Decide what restoring one collection entry does to the live state."""
    if live_quantity is None:
        return Insert(incoming)
    if live_quantity != incoming.quantity:
        return Overwrite(incoming, previous_quantity=live_quantity)
    return Keep(incoming)


def decide_wishlist_merge(live_card_ids: set[str], incoming: WishlistEntry) -> Insert | Keep:
    """Wishlist restore only adds missing cards; existing ones are never updated."""
    if incoming.card_id in live_card_ids:
        return Keep(incoming)
    return Insert(incoming)


def plan_collection_merge(
    live: Iterable[CollectionEntry], incoming: Iterable[CollectionEntry]
) -> list[MergeDecision]:
    """
    Decide every incoming entry against the live state.

    Decisions are made in order against the state produced by the earlier
    ones, so a snapshot that repeats a (cardId, variant) is decided the
    same way applying it twice would be.
    """
    quantities = {entry.key: entry.quantity for entry in live}
    plan: list[MergeDecision] = []
    for entry in incoming:
        decision = decide_collection_merge(quantities.get(entry.key), entry)
        if not isinstance(decision, Keep):
            quantities[entry.key] = entry.quantity
        plan.append(decision)
    return plan


def merge_collections(
    live: Iterable[CollectionEntry], incoming: Iterable[CollectionEntry]
) -> list[CollectionEntry]:
    """Pure form of the collection merge: the live state after a restore."""
    merged: dict[tuple[str, str], CollectionEntry] = {entry.key: entry for entry in live}
    for decision in plan_collection_merge(list(merged.values()), incoming):
        if isinstance(decision, (Insert, Overwrite)):
            entry = decision.entry
            if isinstance(entry, CollectionEntry):
                merged[entry.key] = entry
    return list(merged.values())


# =============================================================================
# RESULTS
# =============================================================================


@dataclass(frozen=True)
class RestoreItemError:
    """One card that could not be restored."""

    card_id: str
    message: str

    def __str__(self) -> str:
        return f"Failed to restore card {self.card_id}: {self.message}"


@dataclass
class RestoreResult:
    """
    Outcome of one restore invocation.

    Partial application is real: counts reflect what was written even when
    errors is non-empty.
    """

    collection_restored: int = 0
    collection_skipped: int = 0
    wishlist_restored: int = 0
    errors: list[RestoreItemError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    restored_at: int = 0
    checksum_after: int | None = None
    snapshot_checksum: int | None = None

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def matches_snapshot(self) -> bool:
        """True when the live state now fingerprints exactly like the snapshot."""
        return self.checksum_after is not None and self.checksum_after == self.snapshot_checksum


# =============================================================================
# RECONCILER
# =============================================================================


def _coerce_document(snapshot: Snapshot | SnapshotDocument | Mapping[str, Any]) -> SnapshotDocument:
    if isinstance(snapshot, SnapshotDocument):
        return snapshot
    if isinstance(snapshot, Snapshot):
        return snapshot_to_document(snapshot)

    validation = validate_snapshot(dict(snapshot) if isinstance(snapshot, Mapping) else snapshot)
    if validation.document is None:
        raise MalformedSnapshotError(validation.errors)
    return validation.document


async def restore_from_snapshot(
    session: AsyncSession,
    profile_id: str,
    snapshot: Snapshot | SnapshotDocument | Mapping[str, Any],
    restore_wishlist: bool = False,
    device_id: str | None = None,
) -> RestoreResult:
    """
    Reconcile a snapshot into a profile's live records.

    Each write runs in its own savepoint, so a failing card is rolled back
    alone and the rest of the batch proceeds. Exactly one audit record is
    appended per invocation that passes the shape check.

    Raises:
        MalformedSnapshotError: If the snapshot fails the shape check
        ProfileNotFoundError: If the profile does not exist
    """
    document = _coerce_document(snapshot)
    await require_profile(session, profile_id)

    result = RestoreResult(snapshot_checksum=document.checksum)
    warning = version_warning(document.version)
    if warning:
        result.warnings.append(warning)
        logger.warning(
            "Restoring version %d snapshot into %s (current version %d)",
            document.version,
            profile_id,
            SNAPSHOT_VERSION,
        )

    await _restore_collection(session, profile_id, document, result)
    if restore_wishlist and document.wishlist:
        await _restore_wishlist(session, profile_id, document, result)

    await append_activity(
        session,
        profile_id,
        SyncEvent.DATA_RESTORED.value,
        {
            "snapshotVersion": document.version,
            "snapshotChecksum": document.checksum,
            "collectionRestored": result.collection_restored,
            "collectionSkipped": result.collection_skipped,
            "wishlistRestored": result.wishlist_restored,
            "errors": [{"cardId": e.card_id, "message": e.message} for e in result.errors],
            "deviceId": device_id,
        },
    )

    records = await load_profile_records(session, profile_id)
    result.checksum_after = compute_checksum(
        records.collection, records.wishlist, records.achievements
    )
    result.restored_at = now_ms()

    logger.info(
        "Restored snapshot into %s: %d restored, %d skipped, %d wishlist, %d errors",
        profile_id,
        result.collection_restored,
        result.collection_skipped,
        result.wishlist_restored,
        len(result.errors),
    )
    return result


async def _restore_collection(
    session: AsyncSession,
    profile_id: str,
    document: SnapshotDocument,
    result: RestoreResult,
) -> None:
    live_rows: dict[tuple[str, str], CollectionCardDB] = {
        (row.card_id, row.variant or CardVariant.NORMAL.value): row
        for row in await get_collection_rows(session, profile_id)
    }

    for card in document.collection:
        problems = card_value_errors(card)
        if problems:
            result.errors.append(RestoreItemError(card.card_id, "; ".join(problems)))
            continue

        entry = document_card_to_entry(card)
        row = live_rows.get(entry.key)
        decision = decide_collection_merge(row.quantity if row else None, entry)

        if isinstance(decision, Keep):
            result.collection_skipped += 1
            continue

        try:
            async with session.begin_nested():
                if isinstance(decision, Insert):
                    live_rows[entry.key] = await add_collection_card(
                        session, profile_id, entry.card_id, entry.variant, entry.quantity
                    )
                elif row is not None:
                    await set_collection_quantity(session, row, entry.quantity)
        except SQLAlchemyError as e:
            logger.warning("Failed to restore card %s for %s: %s", entry.card_id, profile_id, e)
            result.errors.append(RestoreItemError(entry.card_id, str(e)))
            continue

        result.collection_restored += 1


async def _restore_wishlist(
    session: AsyncSession,
    profile_id: str,
    document: SnapshotDocument,
    result: RestoreResult,
) -> None:
    live_card_ids = {row.card_id for row in await get_wishlist_rows(session, profile_id)}

    for card in document.wishlist or []:
        if not card.card_id or not card.card_id.strip():
            result.errors.append(RestoreItemError(card.card_id, "Invalid card ID: empty"))
            continue

        entry = WishlistEntry(card_id=card.card_id, is_priority=card.is_priority)
        if isinstance(decide_wishlist_merge(live_card_ids, entry), Keep):
            continue

        try:
            async with session.begin_nested():
                await add_wishlist_card(session, profile_id, entry.card_id, entry.is_priority)
        except SQLAlchemyError as e:
            logger.warning(
                "Failed to restore wishlist card %s for %s: %s", entry.card_id, profile_id, e
            )
            result.errors.append(RestoreItemError(entry.card_id, str(e)))
            continue

        live_card_ids.add(entry.card_id)
        result.wishlist_restored += 1
