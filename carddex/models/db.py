"""
SQLAlchemy ORM models for the authoritative record store.

Every record table is keyed by profile_id, which partitions all
checksummed record sets.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class ProfileDB(Base):
    """A collector profile within a family account."""

    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    profile_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    display_name: Mapped[str] = mapped_column(String(255), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<ProfileDB(profile_id={self.profile_id})>"


class CollectionCardDB(Base):
    """
    Owned copies of one card printing.

    Unique per (profile, card, variant).
    """

    __tablename__ = "collection_cards"
    __table_args__ = (
        UniqueConstraint("profile_id", "card_id", "variant", name="uq_profile_card_variant"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    profile_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("profiles.profile_id", ondelete="CASCADE"), index=True
    )
    card_id: Mapped[str] = mapped_column(String(255), index=True)
    # Legacy rows may have no variant; they are treated as "normal"
    variant: Mapped[str | None] = mapped_column(String(32), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1)

    def __repr__(self) -> str:
        return f"<CollectionCardDB(card={self.card_id}, variant={self.variant}, qty={self.quantity})>"


class WishlistCardDB(Base):
    """A wanted card, unique per (profile, card)."""

    __tablename__ = "wishlist_cards"
    __table_args__ = (UniqueConstraint("profile_id", "card_id", name="uq_profile_wishlist_card"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    profile_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("profiles.profile_id", ondelete="CASCADE"), index=True
    )
    card_id: Mapped[str] = mapped_column(String(255))
    is_priority: Mapped[bool] = mapped_column(Boolean, default=False)

    def __repr__(self) -> str:
        return f"<WishlistCardDB(card={self.card_id}, priority={self.is_priority})>"


class AchievementDB(Base):
    """An earned achievement. Rows are never updated."""

    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    profile_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("profiles.profile_id", ondelete="CASCADE"), index=True
    )
    achievement_type: Mapped[str] = mapped_column(String(64))
    achievement_key: Mapped[str] = mapped_column(String(255))
    earned_at: Mapped[int] = mapped_column(BigInteger)


class MilestoneDB(Base):
    """A collection-size milestone reached by a profile."""

    __tablename__ = "collection_milestones"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    profile_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("profiles.profile_id", ondelete="CASCADE"), index=True
    )
    milestone_key: Mapped[str] = mapped_column(String(64))
    threshold: Mapped[int] = mapped_column(Integer)
    card_count_at_reach: Mapped[int] = mapped_column(Integer)
    celebrated_at: Mapped[int] = mapped_column(BigInteger)


class ActivityLogDB(Base):
    """
    Append-only activity log.

    Device registrations, backup points, exports and restores are all
    recorded here. Rows are never updated or deleted by this subsystem.
    """

    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    profile_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("profiles.profile_id", ondelete="CASCADE"), index=True
    )
    action: Mapped[str] = mapped_column(String(64))
    event_type: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[int] = mapped_column(BigInteger, index=True)

    def __repr__(self) -> str:
        return f"<ActivityLogDB(profile={self.profile_id}, event={self.event_type})>"
