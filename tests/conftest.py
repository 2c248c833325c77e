from collections.abc import Awaitable, Callable, Iterable

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from carddex.db.database import get_session
from carddex.db.operations import (
    add_achievement,
    add_collection_card,
    add_wishlist_card,
    create_profile,
)
from carddex.main import app
from carddex.models.db import Base
from carddex.models.records import AchievementRecord, CollectionEntry, WishlistEntry

PROFILE_ID = "profile-1"

Seeder = Callable[..., Awaitable[None]]


@pytest.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    # Restore writes each card in a SAVEPOINT; pysqlite's implicit
    # transaction handling breaks those unless BEGIN is emitted by hand.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_implicit_begin(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def session(async_engine) -> AsyncSession:
    """Provide a database session for tests."""
    async_session = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        yield session


@pytest.fixture
async def profile_id(session: AsyncSession) -> str:
    """An existing, empty profile."""
    await create_profile(session, PROFILE_ID, display_name="Ash")
    await session.commit()
    return PROFILE_ID


@pytest.fixture
def seed(session: AsyncSession) -> Seeder:
    """Insert records for a profile and commit."""

    async def _seed(
        profile_id: str,
        collection: Iterable[CollectionEntry] = (),
        wishlist: Iterable[WishlistEntry] = (),
        achievements: Iterable[AchievementRecord] = (),
    ) -> None:
        for entry in collection:
            await add_collection_card(
                session, profile_id, entry.card_id, entry.variant, entry.quantity
            )
        for item in wishlist:
            await add_wishlist_card(session, profile_id, item.card_id, item.is_priority)
        for record in achievements:
            await add_achievement(
                session,
                profile_id,
                record.achievement_type,
                record.achievement_key,
                record.earned_at,
            )
        await session.commit()

    return _seed


@pytest.fixture
async def client(async_engine):
    """Provide an async test client with overridden database session."""
    async_session = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_session():
        async with async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def api_profile(async_engine) -> str:
    """A profile created directly in the engine the API client uses."""
    async_session = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        await create_profile(session, PROFILE_ID)
        await add_collection_card(session, PROFILE_ID, "base1-4", "holofoil", 1)
        await add_collection_card(session, PROFILE_ID, "base1-58", "normal", 3)
        await add_wishlist_card(session, PROFILE_ID, "base1-2", True)
        await session.commit()
    return PROFILE_ID
