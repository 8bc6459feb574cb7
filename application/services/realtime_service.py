"""Application service for realtime chat WebSocket workflows.

Keeps application logic (sessions, orchestration) separate from the concrete
connection management and broadcast transport.
"""
from __future__ import annotations

import uuid
from typing import Callable

from fastapi import WebSocket

from domain.chat.registry import RoomRegistry
from domain.common.unit_of_work import AbstractUnitOfWork
from application.ports.realtime import RoomOptionsEvent
from application.services.auth_gate import AuthGate
from application.services.broadcaster import RoomBroadcaster
from application.services.chat_session import ChatSession
from application.services.history_service import HistoryStore
from application.services.token_service import TokenService
from infrastructure.realtime.connection_manager import ConnectionManager
from core.logging_config import get_logger


logger = get_logger(__name__)


class RealtimeService:
    def __init__(self, *, registry: RoomRegistry, auth_gate: AuthGate, history: HistoryStore,
                 connections: ConnectionManager) -> None:
        self._registry = registry
        self._auth = auth_gate
        self._history = history
        self._conn = connections
        self._broadcaster = RoomBroadcaster(registry, connections)

    @classmethod
    def build(cls, uow_factory: Callable[..., AbstractUnitOfWork], *,
              registry: RoomRegistry | None = None,
              token_service: TokenService | None = None,
              connections: ConnectionManager | None = None) -> "RealtimeService":
        """Wire the default collaborators around one unit-of-work factory."""
        return cls(
            registry=registry or RoomRegistry(),
            auth_gate=AuthGate(uow_factory, token_service),
            history=HistoryStore(uow_factory),
            connections=connections or ConnectionManager(),
        )

    # Connection lifecycle management
    async def open(self, ws: WebSocket) -> ChatSession:
        """Register an accepted socket and greet it with the room list."""
        connection_id = uuid.uuid4().hex
        self._conn.add(connection_id, ws)
        session = ChatSession(
            connection_id,
            registry=self._registry,
            auth_gate=self._auth,
            history=self._history,
            broadcaster=self._broadcaster,
        )
        await self._conn.send(connection_id, RoomOptionsEvent(rooms=list(self._registry.room_ids)))
        return session

    async def close(self, session: ChatSession) -> None:
        try:
            await session.close()
        finally:
            self._conn.remove(session.connection_id)

    # Expose for API convenience
    @property
    def registry(self) -> RoomRegistry:
        return self._registry

    @property
    def connections(self) -> ConnectionManager:
        return self._conn
