"""
Database operations for the authoritative record store.

Provides async functions for reading a profile's record sets and for the
narrow set of writes this subsystem performs: inserts and quantity patches
during restore, and appends to the activity log.
"""

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carddex.clock import now_ms
from carddex.models.db import (
    AchievementDB,
    ActivityLogDB,
    CollectionCardDB,
    MilestoneDB,
    ProfileDB,
    WishlistCardDB,
)
from carddex.models.failure import ProfileNotFoundError
from carddex.models.records import (
    AchievementRecord,
    CardVariant,
    CollectionEntry,
    MilestoneRecord,
    ProfileRecords,
    WishlistEntry,
)

# Activity log action under which all data-safety events are recorded
SYNC_ACTION = "data_sync"

# --- Profile Operations ---


async def get_profile(session: AsyncSession, profile_id: str) -> ProfileDB | None:
    """
    Get a profile by its external id.

    Returns None if the profile does not exist.
    """
    result = await session.execute(select(ProfileDB).where(ProfileDB.profile_id == profile_id))
    return result.scalar_one_or_none()


async def require_profile(session: AsyncSession, profile_id: str) -> ProfileDB:
    """Get a profile or raise ProfileNotFoundError."""
    profile = await get_profile(session, profile_id)
    if profile is None:
        raise ProfileNotFoundError(profile_id)
    return profile


async def create_profile(session: AsyncSession, profile_id: str, display_name: str = "") -> ProfileDB:
    """
    Create a new profile.

    Raises IntegrityError if the profile already exists.
    """
    profile = ProfileDB(profile_id=profile_id, display_name=display_name)
    session.add(profile)
    await session.flush()
    return profile


# --- Record Reads ---


async def get_collection_rows(session: AsyncSession, profile_id: str) -> list[CollectionCardDB]:
    result = await session.execute(
        select(CollectionCardDB).where(CollectionCardDB.profile_id == profile_id)
    )
    return list(result.scalars().all())


async def get_wishlist_rows(session: AsyncSession, profile_id: str) -> list[WishlistCardDB]:
    result = await session.execute(
        select(WishlistCardDB).where(WishlistCardDB.profile_id == profile_id)
    )
    return list(result.scalars().all())


async def get_achievement_rows(session: AsyncSession, profile_id: str) -> list[AchievementDB]:
    result = await session.execute(
        select(AchievementDB).where(AchievementDB.profile_id == profile_id)
    )
    return list(result.scalars().all())


async def get_milestone_rows(session: AsyncSession, profile_id: str) -> list[MilestoneDB]:
    result = await session.execute(select(MilestoneDB).where(MilestoneDB.profile_id == profile_id))
    return list(result.scalars().all())


def collection_row_to_entry(row: CollectionCardDB) -> CollectionEntry:
    """Convert a database row to a domain entry, defaulting the variant."""
    return CollectionEntry(
        card_id=row.card_id,
        variant=row.variant or CardVariant.NORMAL.value,
        quantity=row.quantity,
    )


def wishlist_row_to_entry(row: WishlistCardDB) -> WishlistEntry:
    return WishlistEntry(card_id=row.card_id, is_priority=bool(row.is_priority))


def achievement_row_to_record(row: AchievementDB) -> AchievementRecord:
    return AchievementRecord(
        achievement_type=row.achievement_type,
        achievement_key=row.achievement_key,
        earned_at=row.earned_at,
    )


def milestone_row_to_record(row: MilestoneDB) -> MilestoneRecord:
    return MilestoneRecord(
        milestone_key=row.milestone_key,
        threshold=row.threshold,
        card_count_at_reach=row.card_count_at_reach,
        celebrated_at=row.celebrated_at,
    )


async def load_profile_records(
    session: AsyncSession, profile_id: str, include_milestones: bool = False
) -> ProfileRecords:
    """
    Read all checksummed record sets for a profile.

    All reads run in the caller's session, so they observe one consistent
    view of the profile. Raises ProfileNotFoundError for unknown profiles.
    """
    await require_profile(session, profile_id)

    collection = [collection_row_to_entry(r) for r in await get_collection_rows(session, profile_id)]
    wishlist = [wishlist_row_to_entry(r) for r in await get_wishlist_rows(session, profile_id)]
    achievements = [
        achievement_row_to_record(r) for r in await get_achievement_rows(session, profile_id)
    ]
    milestones: list[MilestoneRecord] = []
    if include_milestones:
        milestones = [
            milestone_row_to_record(r) for r in await get_milestone_rows(session, profile_id)
        ]

    return ProfileRecords(
        profile_id=profile_id,
        collection=collection,
        wishlist=wishlist,
        achievements=achievements,
        milestones=milestones,
    )


# --- Record Writes ---


async def add_collection_card(
    session: AsyncSession,
    profile_id: str,
    card_id: str,
    variant: str = CardVariant.NORMAL.value,
    quantity: int = 1,
) -> CollectionCardDB:
    """Insert a collection entry. Quantity must already be validated (>= 1)."""
    row = CollectionCardDB(profile_id=profile_id, card_id=card_id, variant=variant, quantity=quantity)
    session.add(row)
    await session.flush()
    return row


async def set_collection_quantity(
    session: AsyncSession, row: CollectionCardDB, quantity: int
) -> CollectionCardDB:
    """Patch the quantity of an existing collection entry."""
    row.quantity = quantity
    await session.flush()
    return row


async def add_wishlist_card(
    session: AsyncSession, profile_id: str, card_id: str, is_priority: bool = False
) -> WishlistCardDB:
    row = WishlistCardDB(profile_id=profile_id, card_id=card_id, is_priority=is_priority)
    session.add(row)
    await session.flush()
    return row


async def add_achievement(
    session: AsyncSession,
    profile_id: str,
    achievement_type: str,
    achievement_key: str,
    earned_at: int,
) -> AchievementDB:
    row = AchievementDB(
        profile_id=profile_id,
        achievement_type=achievement_type,
        achievement_key=achievement_key,
        earned_at=earned_at,
    )
    session.add(row)
    await session.flush()
    return row


async def add_milestone(
    session: AsyncSession,
    profile_id: str,
    milestone_key: str,
    threshold: int,
    card_count_at_reach: int,
    celebrated_at: int,
) -> MilestoneDB:
    row = MilestoneDB(
        profile_id=profile_id,
        milestone_key=milestone_key,
        threshold=threshold,
        card_count_at_reach=card_count_at_reach,
        celebrated_at=celebrated_at,
    )
    session.add(row)
    await session.flush()
    return row


# --- Activity Log ---


async def append_activity(
    session: AsyncSession,
    profile_id: str,
    event_type: str,
    payload: dict[str, object] | None = None,
    action: str = SYNC_ACTION,
) -> ActivityLogDB:
    """
    Append one record to the activity log.

    The log is append-only; there is no update or delete counterpart.
    """
    entry = ActivityLogDB(
        profile_id=profile_id,
        action=action,
        event_type=event_type,
        payload=dict(payload or {}),
        created_at=now_ms(),
    )
    session.add(entry)
    await session.flush()
    return entry


async def get_activity(
    session: AsyncSession,
    profile_id: str,
    event_types: Iterable[str] | None = None,
    limit: int | None = None,
    since: int | None = None,
) -> list[ActivityLogDB]:
    """
    Get activity log entries for a profile, newest first.

    Args:
        session: Database session
        profile_id: Profile to read
        event_types: Only return these event types (all if None)
        limit: Maximum number of entries
        since: Only return entries created at or after this epoch-ms time
    """
    query = select(ActivityLogDB).where(ActivityLogDB.profile_id == profile_id)
    if event_types is not None:
        query = query.where(ActivityLogDB.event_type.in_(list(event_types)))
    if since is not None:
        query = query.where(ActivityLogDB.created_at >= since)
    query = query.order_by(ActivityLogDB.created_at.desc(), ActivityLogDB.id.desc())
    if limit is not None:
        query = query.limit(limit)

    result = await session.execute(query)
    return list(result.scalars().all())
