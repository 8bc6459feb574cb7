"""SQLAlchemy repositories and unit of work against in-memory SQLite."""
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from domain.chat.entity import ChatIdentity, ChatMessage
from domain.common.exceptions import UsernameAlreadyExistsException
from domain.user.entity import User
from infrastructure.models import Base, ChatMessageModel
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from shared.constants import UserRole


pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, expire_on_commit=False)
    await engine.dispose()


def _uow(factory, **kw) -> SQLAlchemyUnitOfWork:
    return SQLAlchemyUnitOfWork(session_factory=factory, **kw)


async def _create_user(factory, username: str, role: str = "influencer") -> User:
    async with _uow(factory) as uow:
        return await uow.user_repository.create(User(
            id=None,
            google_id=f"g-{username}",
            email=f"{username}@example.com",
            username=username,
            role=role,
        ))


async def test_user_round_trip_and_lookups(session_factory):
    created = await _create_user(session_factory, "alice")
    assert created.id is not None
    assert created.created_at is not None

    async with _uow(session_factory, readonly=True) as uow:
        repo = uow.user_repository
        assert (await repo.get_by_id(created.id)).username == "alice"
        assert (await repo.get_by_google_id("g-alice")).id == created.id
        assert (await repo.get_by_email("alice@example.com")).id == created.id
        assert await repo.get_by_email("nobody@example.com") is None
        assert await repo.exists_by_username("alice")
        assert not await repo.exists_by_username("alice", exclude_user_id=created.id)


async def test_user_update_persists(session_factory):
    created = await _create_user(session_factory, "alice")

    async with _uow(session_factory) as uow:
        user = await uow.user_repository.get_by_id(created.id)
        user.rename("alice2")
        user.assign_role(UserRole.BRAND)
        await uow.user_repository.update(user)

    async with _uow(session_factory, readonly=True) as uow:
        stored = await uow.user_repository.get_by_id(created.id)
    assert (stored.username, stored.role) == ("alice2", "brand")


async def test_duplicate_username_maps_to_domain_error(session_factory):
    await _create_user(session_factory, "alice")

    with pytest.raises(UsernameAlreadyExistsException):
        async with _uow(session_factory) as uow:
            await uow.user_repository.create(User(
                id=None, google_id="g-other", email="other@example.com", username="alice",
            ))


async def test_failed_unit_of_work_rolls_back(session_factory):
    with pytest.raises(RuntimeError):
        async with _uow(session_factory) as uow:
            await uow.user_repository.create(User(
                id=None, google_id="g-x", email="x@example.com", username="ghost",
            ))
            raise RuntimeError("boom")

    async with _uow(session_factory, readonly=True) as uow:
        assert await uow.user_repository.get_by_email("x@example.com") is None


async def test_messages_are_listed_newest_window_oldest_first(session_factory):
    alice = await _create_user(session_factory, "alice")
    identity = ChatIdentity(user_id=alice.id, username="alice", role=UserRole.INFLUENCER)
    base = datetime(2024, 5, 1, tzinfo=timezone.utc)

    async with _uow(session_factory) as uow:
        stored = await uow.message_repository.create(ChatMessage.compose("room-1", identity, " hi "))
        assert stored.id is not None and stored.created_at is not None
        # rows with fixed timestamps, including a tie broken by id
        for i, offset in enumerate([5, 1, 3, 3]):
            uow.session.add(ChatMessageModel(
                room_id="room-2",
                sender_user_id=alice.id,
                sender_username="alice",
                sender_role="influencer",
                text=f"m{i}",
                created_at=base + timedelta(seconds=offset),
            ))

    async with _uow(session_factory, readonly=True) as uow:
        recent = await uow.message_repository.list_recent("room-2", 3)
        room_1 = await uow.message_repository.list_recent("room-1", 80)

    assert [m.text for m in recent] == ["m2", "m3", "m0"]
    assert all(m.room_id == "room-2" for m in recent)
    assert recent[0].sender_role is UserRole.INFLUENCER
    assert [m.text for m in room_1] == ["hi"]
