"""Tests for the additive-only restore reconciler."""

from typing import Any

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from carddex.db.operations import get_activity, load_profile_records
from carddex.models.failure import MalformedSnapshotError, ProfileNotFoundError
from carddex.models.records import CollectionEntry, SyncEvent, WishlistEntry
from carddex.services import restore as restore_module
from carddex.services.checksum import compute_checksum
from carddex.services.restore import (
    Insert,
    Keep,
    Overwrite,
    decide_collection_merge,
    decide_wishlist_merge,
    merge_collections,
    plan_collection_merge,
    restore_from_snapshot,
)
from carddex.services.snapshot_service import create_snapshot


def make_snapshot(
    collection: list[tuple[str, str | None, int]],
    wishlist: list[tuple[str, bool]] | None = None,
    version: int = 1,
) -> dict[str, Any]:
    entries = [CollectionEntry(c, v or "normal", q) for c, v, q in collection]
    doc: dict[str, Any] = {
        "version": version,
        "createdAt": 1700000000000,
        "checksum": compute_checksum(entries),
        "collection": [{"cardId": c, "variant": v, "quantity": q} for c, v, q in collection],
    }
    if wishlist is not None:
        doc["wishlist"] = [{"cardId": c, "isPriority": p} for c, p in wishlist]
    return doc


async def live_collection(session: AsyncSession, profile_id: str) -> set[tuple[str, str, int]]:
    records = await load_profile_records(session, profile_id)
    return {(e.card_id, e.variant, e.quantity) for e in records.collection}


class TestMergeDecisions:
    def test_absent_is_insert(self) -> None:
        entry = CollectionEntry("A", "normal", 2)

        assert decide_collection_merge(None, entry) == Insert(entry)

    def test_different_quantity_is_overwrite(self) -> None:
        entry = CollectionEntry("A", "normal", 2)

        assert decide_collection_merge(5, entry) == Overwrite(entry, previous_quantity=5)

    def test_equal_quantity_is_keep(self) -> None:
        entry = CollectionEntry("A", "normal", 2)

        assert decide_collection_merge(2, entry) == Keep(entry)

    def test_wishlist_never_updates(self) -> None:
        entry = WishlistEntry("A", is_priority=True)

        assert decide_wishlist_merge({"A"}, entry) == Keep(entry)
        assert decide_wishlist_merge(set(), entry) == Insert(entry)

    def test_duplicate_snapshot_entries_decided_sequentially(self) -> None:
        first = CollectionEntry("A", "normal", 2)

        plan = plan_collection_merge([], [first, first])

        assert plan == [Insert(first), Keep(first)]

    def test_merge_never_drops_live_entries(self) -> None:
        live = [CollectionEntry("A", "normal", 3), CollectionEntry("C", "holofoil", 1)]
        incoming = [CollectionEntry("A", "normal", 1), CollectionEntry("B", "normal", 1)]

        merged = merge_collections(live, incoming)

        assert set(merged) == {
            CollectionEntry("A", "normal", 1),
            CollectionEntry("B", "normal", 1),
            CollectionEntry("C", "holofoil", 1),
        }

    def test_pure_merge_is_idempotent(self) -> None:
        live = [CollectionEntry("A", "normal", 3)]
        incoming = [CollectionEntry("A", "normal", 1), CollectionEntry("B", "normal", 2)]

        once = merge_collections(live, incoming)

        assert set(merge_collections(once, incoming)) == set(once)


class TestRestoreFromSnapshot:
    async def test_documented_example(self, session: AsyncSession, profile_id: str, seed) -> None:
        """Live [(A,normal,3)] + snapshot [(A,normal,3),(B,holofoil,1)]."""
        await seed(profile_id, [CollectionEntry("A", "normal", 3)])

        result = await restore_from_snapshot(
            session, profile_id, make_snapshot([("A", "normal", 3), ("B", "holofoil", 1)])
        )

        assert result.success
        assert result.collection_restored == 1
        assert result.collection_skipped == 1
        assert await live_collection(session, profile_id) == {
            ("A", "normal", 3),
            ("B", "holofoil", 1),
        }
        assert result.matches_snapshot

    async def test_snapshot_quantity_wins(self, session: AsyncSession, profile_id: str, seed) -> None:
        await seed(profile_id, [CollectionEntry("A", "normal", 5)])

        result = await restore_from_snapshot(session, profile_id, make_snapshot([("A", "normal", 2)]))

        assert result.collection_restored == 1
        assert await live_collection(session, profile_id) == {("A", "normal", 2)}

    async def test_idempotent(self, session: AsyncSession, profile_id: str, seed) -> None:
        """Restoring the same snapshot twice leaves the same state."""
        await seed(profile_id, [CollectionEntry("A", "normal", 1), CollectionEntry("Z", "normal", 7)])
        snapshot = make_snapshot([("A", "normal", 4), ("B", "holofoil", 1), ("B", None, 2)])

        await restore_from_snapshot(session, profile_id, snapshot)
        after_first = await live_collection(session, profile_id)
        second = await restore_from_snapshot(session, profile_id, snapshot)

        assert await live_collection(session, profile_id) == after_first
        assert second.collection_restored == 0
        assert second.collection_skipped == 3

    async def test_never_removes_live_entries(
        self, session: AsyncSession, profile_id: str, seed
    ) -> None:
        await seed(
            profile_id,
            [CollectionEntry("A", "normal", 1), CollectionEntry("only-live", "holofoil", 2)],
        )

        await restore_from_snapshot(session, profile_id, make_snapshot([("A", "normal", 1)]))

        assert ("only-live", "holofoil", 2) in await live_collection(session, profile_id)

    async def test_accepts_snapshot_object(self, session: AsyncSession, profile_id: str, seed) -> None:
        await seed(profile_id, [CollectionEntry("A", "normal", 2)])
        snapshot = await create_snapshot(session, profile_id)

        result = await restore_from_snapshot(session, profile_id, snapshot)

        assert result.collection_skipped == 1
        assert result.matches_snapshot

    async def test_per_card_value_errors_do_not_abort(
        self, session: AsyncSession, profile_id: str
    ) -> None:
        snapshot = make_snapshot(
            [("A", "normal", 1), ("", "normal", 1), ("B", "shiny", 1), ("C", "normal", 0)]
        )

        result = await restore_from_snapshot(session, profile_id, snapshot)

        assert not result.success
        assert result.collection_restored == 1
        assert len(result.errors) == 3
        assert str(result.errors[1]) == "Failed to restore card B: Invalid variant: shiny"
        assert await live_collection(session, profile_id) == {("A", "normal", 1)}

    async def test_store_failure_rolls_back_one_card(
        self, session: AsyncSession, profile_id: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A failing write is isolated in its savepoint and the batch continues."""
        real_add = restore_module.add_collection_card

        async def flaky_add(session, profile_id, card_id, variant, quantity):
            if card_id == "BROKEN":
                raise IntegrityError("INSERT", {}, Exception("constraint failed"))
            return await real_add(session, profile_id, card_id, variant, quantity)

        monkeypatch.setattr(restore_module, "add_collection_card", flaky_add)

        result = await restore_from_snapshot(
            session,
            profile_id,
            make_snapshot([("A", "normal", 1), ("BROKEN", "normal", 1), ("C", "normal", 1)]),
        )

        assert result.collection_restored == 2
        assert [e.card_id for e in result.errors] == ["BROKEN"]
        assert await live_collection(session, profile_id) == {("A", "normal", 1), ("C", "normal", 1)}

    async def test_malformed_snapshot_rejected_before_mutation(
        self, session: AsyncSession, profile_id: str
    ) -> None:
        bad = {"version": 1, "collection": [{"cardId": "A", "quantity": "lots"}]}

        with pytest.raises(MalformedSnapshotError) as exc_info:
            await restore_from_snapshot(session, profile_id, bad)

        assert any("checksum" in error for error in exc_info.value.errors)
        assert await live_collection(session, profile_id) == set()
        assert await get_activity(session, profile_id) == []

    async def test_non_mapping_snapshot_rejected(
        self, session: AsyncSession, profile_id: str
    ) -> None:
        with pytest.raises(MalformedSnapshotError) as exc_info:
            await restore_from_snapshot(session, profile_id, ["not", "a", "snapshot"])  # type: ignore[arg-type]

        assert exc_info.value.errors == ["Invalid snapshot format"]

    async def test_version_mismatch_is_warning(self, session: AsyncSession, profile_id: str) -> None:
        result = await restore_from_snapshot(
            session, profile_id, make_snapshot([("A", "normal", 1)], version=2)
        )

        assert result.success
        assert result.collection_restored == 1
        assert result.warnings == [
            "Snapshot version 2 may not be compatible with current version 1"
        ]

    async def test_unknown_profile(self, session: AsyncSession) -> None:
        with pytest.raises(ProfileNotFoundError):
            await restore_from_snapshot(session, "nobody", make_snapshot([("A", "normal", 1)]))


class TestWishlistRestore:
    async def test_wishlist_skipped_unless_requested(
        self, session: AsyncSession, profile_id: str
    ) -> None:
        snapshot = make_snapshot([], wishlist=[("W", True)])

        result = await restore_from_snapshot(session, profile_id, snapshot)

        assert result.wishlist_restored == 0
        assert (await load_profile_records(session, profile_id)).wishlist == []

    async def test_wishlist_only_adds_missing(
        self, session: AsyncSession, profile_id: str, seed
    ) -> None:
        await seed(profile_id, wishlist=[WishlistEntry("W1", False)])
        snapshot = make_snapshot([], wishlist=[("W1", True), ("W2", True)])

        result = await restore_from_snapshot(session, profile_id, snapshot, restore_wishlist=True)

        assert result.wishlist_restored == 1
        wishlist = {w.card_id: w.is_priority for w in (await load_profile_records(session, profile_id)).wishlist}
        # Existing entry keeps its priority flag
        assert wishlist == {"W1": False, "W2": True}


class TestRestoreAudit:
    async def test_one_audit_record_per_invocation(
        self, session: AsyncSession, profile_id: str
    ) -> None:
        snapshot = make_snapshot([("A", "normal", 1), ("B", "bogus", 1)])

        await restore_from_snapshot(session, profile_id, snapshot, device_id="phone-1")

        entries = await get_activity(session, profile_id, event_types=[SyncEvent.DATA_RESTORED.value])
        assert len(entries) == 1
        payload = entries[0].payload
        assert payload["deviceId"] == "phone-1"
        assert payload["collectionRestored"] == 1
        assert payload["collectionSkipped"] == 0
        assert payload["errors"] == [{"cardId": "B", "message": "Invalid variant: bogus"}]
