"""Tests for the checksum engine."""

import itertools

import pytest

from carddex.models.records import AchievementRecord, CollectionEntry, WishlistEntry
from carddex.models.snapshot import SnapshotStats
from carddex.services.checksum import (
    canonical_form,
    compare_checksums,
    compute_achievement_checksum,
    compute_checksum,
    compute_collection_checksum,
    compute_full_checksum,
    compute_stats,
    compute_wishlist_checksum,
    diff_collections,
    hash_code,
    render_collection_entry,
    render_wishlist_entry,
)


def reference_hash(text: str) -> int:
    """Independent signed 32-bit rolling hash over UTF-16 code units."""
    data = text.encode("utf-16-le", "surrogatepass")
    h = 0
    for i in range(0, len(data), 2):
        unit = int.from_bytes(data[i : i + 2], "little")
        h = ((h * 31 + unit + 2**31) % 2**32) - 2**31
    return h


@pytest.fixture
def collection() -> list[CollectionEntry]:
    return [
        CollectionEntry("sv1-25", "normal", 2),
        CollectionEntry("sv1-25", "reverseHolofoil", 1),
        CollectionEntry("base1-4", "holofoil", 1),
        CollectionEntry("xy7-54", "1stEditionNormal", 4),
    ]


class TestHashCode:
    def test_empty_string_is_zero(self) -> None:
        assert hash_code("") == 0

    def test_known_values(self) -> None:
        """Matches the well-known 31-multiplier string hash."""
        assert hash_code("a") == 97
        assert hash_code("abc") == 96354
        assert hash_code("hello") == 99162322

    def test_wraps_to_signed_32_bits(self) -> None:
        text = "base1-4|holofoil|1;sv1-25|normal|2" * 3
        result = hash_code(text)

        assert -(2**31) <= result < 2**31
        assert result == reference_hash(text)

    def test_non_bmp_hashes_surrogate_pair(self) -> None:
        """Characters outside the BMP contribute two UTF-16 code units."""
        # U+1F600 is D83D DE00 in UTF-16
        assert hash_code("\U0001f600") == 0xD83D * 31 + 0xDE00

    def test_empty_profile_checksum(self) -> None:
        """An empty profile hashes the bare block separators."""
        assert canonical_form([], [], []) == "||||"
        assert compute_checksum([], [], []) == hash_code("||||") == 3817216


class TestCanonicalForm:
    def test_collection_rendering(self) -> None:
        assert render_collection_entry(CollectionEntry("sv1-25", "holofoil", 3)) == (
            "sv1-25|holofoil|3"
        )

    def test_missing_variant_renders_as_normal(self) -> None:
        assert render_collection_entry(CollectionEntry("sv1-25", "", 1)) == "sv1-25|normal|1"

    def test_wishlist_booleans_are_lowercase(self) -> None:
        assert render_wishlist_entry(WishlistEntry("sv1-1", True)) == "sv1-1|true"
        assert render_wishlist_entry(WishlistEntry("sv1-1", False)) == "sv1-1|false"

    def test_blocks_are_sorted_and_joined(self) -> None:
        form = canonical_form(
            [CollectionEntry("b", "normal", 1), CollectionEntry("a", "normal", 2)],
            [WishlistEntry("w", False)],
            [AchievementRecord("set", "complete_base1", 1700000000000)],
        )

        assert form == "a|normal|2;b|normal|1||w|false||set|complete_base1|1700000000000"

    def test_sort_uses_utf16_code_unit_order(self) -> None:
        """U+FF61 sorts after a surrogate pair in UTF-16 even though its code point is lower."""
        form = canonical_form([], [WishlistEntry("｡"), WishlistEntry("\U0001f600")], [])

        assert form == "||\U0001f600|false;｡|false||"


class TestComputeChecksum:
    def test_permutation_invariant(self, collection: list[CollectionEntry]) -> None:
        """Every ordering of the same records yields the same checksum."""
        expected = compute_checksum(collection)

        for ordering in itertools.permutations(collection):
            assert compute_checksum(list(ordering)) == expected

    def test_quantity_change_changes_checksum(self) -> None:
        two = compute_checksum([CollectionEntry("A", "normal", 2)])
        three = compute_checksum([CollectionEntry("A", "normal", 3)])

        assert two != three

    def test_wishlist_and_achievements_are_included(
        self, collection: list[CollectionEntry]
    ) -> None:
        base = compute_checksum(collection)
        with_wishlist = compute_checksum(collection, [WishlistEntry("sv1-1")])
        with_achievement = compute_checksum(collection, [], [AchievementRecord("t", "k", 1)])

        assert len({base, with_wishlist, with_achievement}) == 3

    def test_block_checksums_hash_single_blocks(self, collection: list[CollectionEntry]) -> None:
        assert compute_collection_checksum(collection) == hash_code(
            canonical_form(collection).split("||")[0]
        )
        assert compute_wishlist_checksum([WishlistEntry("x", True)]) == hash_code("x|true")
        assert compute_achievement_checksum([]) == 0

    def test_full_checksum_carries_stats(self, collection: list[CollectionEntry]) -> None:
        result = compute_full_checksum(collection, [WishlistEntry("sv1-1")], [])

        assert result.checksum == compute_checksum(collection, [WishlistEntry("sv1-1")])
        assert result.stats.collection_cards == 4
        assert result.stats.total_quantity == 8
        assert result.stats.unique_card_ids == 3
        assert result.stats.wishlist_cards == 1
        assert result.timestamp > 0


class TestCompareChecksums:
    def test_identical_views_are_valid(self) -> None:
        stats = SnapshotStats(collection_cards=2, total_quantity=3)

        report = compare_checksums(5, 5, stats, stats)

        assert report.is_valid
        assert report.discrepancies == []

    def test_server_ahead(self) -> None:
        local = compute_stats([CollectionEntry("A")], [], [])
        server = compute_stats([CollectionEntry("A"), CollectionEntry("B", "normal", 2)], [], [])

        report = compare_checksums(1, 2, local, server)

        assert not report.is_valid
        assert "Checksum mismatch between local and server data" in report.discrepancies
        assert "Server has 1 more card entries than local" in report.discrepancies
        assert "Server has 2 more total cards than local" in report.discrepancies
        assert "Refresh your collection to get the latest data" in report.suggestions

    def test_local_ahead_and_wishlist_drift(self) -> None:
        local = SnapshotStats(collection_cards=3, total_quantity=3, wishlist_cards=1)
        server = SnapshotStats(collection_cards=1, total_quantity=1)

        report = compare_checksums(1, 2, local, server)

        assert "Local has 2 more card entries than server" in report.discrepancies
        assert "Wishlist count differs between local and server" in report.discrepancies


class TestDiffCollections:
    def test_diff(self) -> None:
        local = [CollectionEntry("A", "normal", 1), CollectionEntry("B", "holofoil", 2)]
        server = [CollectionEntry("B", "holofoil", 3), CollectionEntry("C", "normal", 1)]

        diff = diff_collections(local, server)

        assert diff.only_in_local == [CollectionEntry("A", "normal", 1)]
        assert diff.only_in_server == [CollectionEntry("C", "normal", 1)]
        assert len(diff.quantity_differences) == 1
        assert diff.quantity_differences[0].local_quantity == 2
        assert diff.quantity_differences[0].server_quantity == 3
        assert not diff.is_empty

    def test_same_collection_is_empty_diff(self) -> None:
        entries = [CollectionEntry("A", "normal", 1)]

        assert diff_collections(entries, list(entries)).is_empty
