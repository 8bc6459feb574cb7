"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")

import itertools
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pytest
from starlette.websockets import WebSocketState

from application.ports.realtime import ServerEvent, serialize_event
from application.services.auth_gate import AuthGate
from application.services.broadcaster import RoomBroadcaster
from application.services.chat_session import ChatSession
from application.services.history_service import HistoryStore
from application.services.token_service import TokenService
from domain.chat.entity import ChatMessage
from domain.chat.registry import RoomRegistry
from domain.chat.repository import ChatMessageRepository
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.user.entity import User
from domain.user.repository import UserRepository


TEST_SECRET = "test-secret-key"
_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


class InMemoryUserRepository(UserRepository):
    def __init__(self) -> None:
        self.rows: Dict[int, User] = {}
        self._ids = itertools.count(1)

    async def create(self, user: User) -> User:  # type: ignore[override]
        user.id = next(self._ids)
        user.created_at = user.updated_at = datetime.now(timezone.utc)
        self.rows[user.id] = user
        return user

    async def get_by_id(self, user_id: int) -> Optional[User]:  # type: ignore[override]
        return self.rows.get(user_id)

    async def get_by_google_id(self, google_id: str) -> Optional[User]:  # type: ignore[override]
        return next((u for u in self.rows.values() if u.google_id == google_id), None)

    async def get_by_email(self, email: str) -> Optional[User]:  # type: ignore[override]
        return next((u for u in self.rows.values() if u.email == email), None)

    async def update(self, user: User) -> User:  # type: ignore[override]
        self.rows[user.id] = user
        return user

    async def exists_by_username(self, username: str,
                                 exclude_user_id: Optional[int] = None) -> bool:  # type: ignore[override]
        return any(u.username == username and u.id != exclude_user_id for u in self.rows.values())


class InMemoryChatMessageRepository(ChatMessageRepository):
    """Stamps messages one second apart so ordering is deterministic."""

    def __init__(self) -> None:
        self.rows: List[ChatMessage] = []
        self.fail = False
        self._ids = itertools.count(1)

    async def create(self, message: ChatMessage) -> ChatMessage:  # type: ignore[override]
        if self.fail:
            raise RuntimeError("database unavailable")
        message.id = next(self._ids)
        message.created_at = _EPOCH + timedelta(seconds=message.id)
        self.rows.append(message)
        return message

    async def list_recent(self, room_id: str, limit: int) -> List[ChatMessage]:  # type: ignore[override]
        rows = sorted((m for m in self.rows if m.room_id == room_id), key=lambda m: (m.created_at, m.id))
        return rows[-limit:] if limit > 0 else []


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: "InMemoryStore", *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self._store = store

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        self.user_repository = self._store.users
        self.message_repository = self._store.messages
        return self

    async def commit(self) -> None:
        self._committed = True
        self._store.commits += 1

    async def rollback(self) -> None:
        self._store.rollbacks += 1


class InMemoryStore:
    def __init__(self) -> None:
        self.users = InMemoryUserRepository()
        self.messages = InMemoryChatMessageRepository()
        self.commits = 0
        self.rollbacks = 0

    def uow(self, readonly: bool = False) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(self, readonly=readonly)


class RecordingPort:
    """BroadcastPort double that keeps every delivered event per connection."""

    def __init__(self) -> None:
        self.deliveries: List[Tuple[str, dict]] = []

    async def send(self, connection_id: str, event: ServerEvent) -> None:
        self.deliveries.append((connection_id, serialize_event(event)))

    async def send_many(self, connection_ids, event: ServerEvent) -> None:
        payload = serialize_event(event)
        for cid in connection_ids:
            self.deliveries.append((cid, payload))

    def events(self, connection_id: str, type_: Optional[str] = None) -> List[dict]:
        return [p for cid, p in self.deliveries if cid == connection_id and (type_ is None or p["type"] == type_)]

    def types(self, connection_id: str) -> List[str]:
        return [p["type"] for p in self.events(connection_id)]

    def clear(self) -> None:
        self.deliveries.clear()


class FakeWebSocket:
    def __init__(self, *, fail: bool = False) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.sent: List[dict] = []
        self.closed_with: Optional[int] = None
        self.fail = fail

    async def send_json(self, payload: dict) -> None:
        if self.fail:
            raise RuntimeError("peer gone")
        self.sent.append(payload)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code
        self.client_state = WebSocketState.DISCONNECTED


class ChatHarness:
    """One isolated chat core wired to in-memory collaborators."""

    def __init__(self, store: InMemoryStore, tokens: TokenService) -> None:
        self.store = store
        self.tokens = tokens
        self.registry = RoomRegistry()
        self.port = RecordingPort()
        self.broadcaster = RoomBroadcaster(self.registry, self.port)
        self.auth = AuthGate(store.uow, tokens)
        self.history = HistoryStore(store.uow, default_limit=80, max_length=2000)
        self._ids = itertools.count(1)

    def session(self, connection_id: Optional[str] = None) -> ChatSession:
        return ChatSession(
            connection_id or f"conn-{next(self._ids)}",
            registry=self.registry,
            auth_gate=self.auth,
            history=self.history,
            broadcaster=self.broadcaster,
        )

    async def user(self, username: str, role: Optional[str] = "influencer") -> Tuple[User, str]:
        user = await self.store.users.create(User(
            id=None,
            google_id=f"g-{username}",
            email=f"{username}@example.com",
            username=username,
            role=role,
            display_name=username,
        ))
        return user, self.tokens.create_auth_token(user)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(secret_key=TEST_SECRET, algorithm="HS256", expire_days=7)


@pytest.fixture
def chat(store, token_service) -> ChatHarness:
    return ChatHarness(store, token_service)


@pytest.fixture
def make_ws():
    return FakeWebSocket
