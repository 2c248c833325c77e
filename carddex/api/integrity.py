"""
Integrity API endpoints.

Checksums, integrity verification and persistence status for a profile.
Drift is reported, never acted on.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from carddex.db import load_profile_records
from carddex.db.database import get_session
from carddex.models.records import CardVariant, CollectionEntry
from carddex.models.snapshot import SnapshotStats
from carddex.services.checksum import (
    compare_checksums,
    compute_full_checksum,
    diff_collections,
)
from carddex.services.device_registry import get_persistence_status, verify_data_integrity

router = APIRouter(prefix="/profiles", tags=["integrity"])


class StatsModel(BaseModel):
    """Summary counts, as carried by snapshots and backup points."""

    collection_cards: int = 0
    total_quantity: int = 0
    unique_card_ids: int = 0
    wishlist_cards: int = 0
    achievements: int = 0
    milestones: int = 0

    @classmethod
    def from_stats(cls, stats: SnapshotStats) -> "StatsModel":
        return cls(
            collection_cards=stats.collection_cards,
            total_quantity=stats.total_quantity,
            unique_card_ids=stats.unique_card_ids,
            wishlist_cards=stats.wishlist_cards,
            achievements=stats.achievements,
            milestones=stats.milestones,
        )


class ChecksumResponse(BaseModel):
    profile_id: str
    checksum: int
    stats: StatsModel
    timestamp: int


class CollectionCardIn(BaseModel):
    card_id: str = Field(..., min_length=1)
    variant: CardVariant = CardVariant.NORMAL
    quantity: int = Field(..., ge=1)


class VerifyRequest(BaseModel):
    """A client's local view of the profile to check against the server."""

    expected_checksum: int
    expected_stats: StatsModel | None = Field(
        default=None,
        description="Local counts; enables per-count discrepancies and suggestions",
    )
    collection: list[CollectionCardIn] | None = Field(
        default=None,
        description="Local collection; enables an entry-level diff",
    )


class QuantityDifferenceModel(BaseModel):
    card_id: str
    variant: str
    local_quantity: int
    server_quantity: int


class CollectionDiffModel(BaseModel):
    only_in_local: list[CollectionCardIn] = Field(default_factory=list)
    only_in_server: list[CollectionCardIn] = Field(default_factory=list)
    quantity_differences: list[QuantityDifferenceModel] = Field(default_factory=list)


class VerifyResponse(BaseModel):
    profile_id: str
    is_valid: bool
    current_checksum: int
    current_stats: StatsModel
    discrepancies: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    collection_diff: CollectionDiffModel | None = None
    verified_at: int


class StatusResponse(BaseModel):
    profile_id: str
    health: str
    checksum: int
    stats: StatsModel
    last_activity: int | None = None
    last_sync: int | None = None
    device_count: int = 0


def _card_out(entry: CollectionEntry) -> CollectionCardIn:
    return CollectionCardIn(card_id=entry.card_id, variant=entry.variant, quantity=entry.quantity)


@router.get("/{profile_id}/checksum", response_model=ChecksumResponse)
async def get_checksum(
    profile_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ChecksumResponse:
    """Authoritative checksum and counts for a profile."""
    records = await load_profile_records(session, profile_id)
    result = compute_full_checksum(records.collection, records.wishlist, records.achievements)
    return ChecksumResponse(
        profile_id=profile_id,
        checksum=result.checksum,
        stats=StatsModel.from_stats(result.stats),
        timestamp=result.timestamp,
    )


@router.post("/{profile_id}/verify", response_model=VerifyResponse)
async def verify_profile(
    profile_id: str,
    request: VerifyRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> VerifyResponse:
    """
    Compare a client's checksum (and optionally counts and collection)
    with the live records.
    """
    expected_stats = None
    if request.expected_stats is not None:
        expected_stats = {
            "collectionCards": request.expected_stats.collection_cards,
            "totalQuantity": request.expected_stats.total_quantity,
            "wishlistCards": request.expected_stats.wishlist_cards,
            "achievements": request.expected_stats.achievements,
        }

    report = await verify_data_integrity(
        session, profile_id, request.expected_checksum, expected_stats
    )

    suggestions: list[str] = []
    if request.expected_stats is not None:
        local = SnapshotStats(**request.expected_stats.model_dump())
        suggestions = compare_checksums(
            request.expected_checksum, report.current_checksum, local, report.current_stats
        ).suggestions

    collection_diff = None
    if request.collection is not None:
        records = await load_profile_records(session, profile_id)
        local_entries = [
            CollectionEntry(card_id=c.card_id, variant=c.variant.value, quantity=c.quantity)
            for c in request.collection
        ]
        diff = diff_collections(local_entries, records.collection)
        collection_diff = CollectionDiffModel(
            only_in_local=[_card_out(e) for e in diff.only_in_local],
            only_in_server=[_card_out(e) for e in diff.only_in_server],
            quantity_differences=[
                QuantityDifferenceModel(
                    card_id=d.card_id,
                    variant=d.variant,
                    local_quantity=d.local_quantity,
                    server_quantity=d.server_quantity,
                )
                for d in diff.quantity_differences
            ],
        )

    return VerifyResponse(
        profile_id=profile_id,
        is_valid=report.is_valid,
        current_checksum=report.current_checksum,
        current_stats=StatsModel.from_stats(report.current_stats),
        discrepancies=report.discrepancies,
        suggestions=suggestions,
        collection_diff=collection_diff,
        verified_at=report.verified_at,
    )


@router.get("/{profile_id}/status", response_model=StatusResponse)
async def get_status(
    profile_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> StatusResponse:
    """Persistence health and sync recency for a profile."""
    status = await get_persistence_status(session, profile_id)
    return StatusResponse(
        profile_id=status.profile_id,
        health=status.health,
        checksum=status.checksum,
        stats=StatsModel.from_stats(status.stats),
        last_activity=status.last_activity,
        last_sync=status.last_sync,
        device_count=status.device_count,
    )
