"""
Room broadcaster: builds chat events from registry snapshots and hands them to
the realtime port.
"""
from __future__ import annotations

from typing import Iterable, List

from domain.chat.entity import ChatIdentity
from domain.chat.registry import RoomRegistry
from application.ports.realtime import (
    BroadcastPort,
    Participant,
    RoomStateEvent,
    ServerEvent,
    SystemEvent,
    TypingStateEvent,
)


def _participants(identities: Iterable[ChatIdentity]) -> List[Participant]:
    return [Participant(username=i.username, role=i.role.value) for i in identities]


class RoomBroadcaster:
    """Best-effort fan-out to the members of a room."""

    def __init__(self, registry: RoomRegistry, port: BroadcastPort) -> None:
        self._registry = registry
        self._port = port

    async def to_room(self, room_id: str, event: ServerEvent) -> None:
        snapshot = self._registry.snapshot(room_id)
        if snapshot is None or not snapshot.members:
            return
        await self._port.send_many(snapshot.members, event)

    async def to_connection(self, connection_id: str, event: ServerEvent) -> None:
        await self._port.send(connection_id, event)

    async def system(self, room_id: str, text: str) -> None:
        await self.to_room(room_id, SystemEvent(message=text))

    async def room_state(self, room_id: str) -> None:
        snapshot = self._registry.snapshot(room_id)
        if snapshot is None:
            return
        event = RoomStateEvent(room=room_id, occupants=_participants(snapshot.occupants))
        await self._port.send_many(snapshot.members, event)

    async def typing_state(self, room_id: str) -> None:
        snapshot = self._registry.snapshot(room_id)
        if snapshot is None:
            return
        event = TypingStateEvent(room=room_id, users=_participants(snapshot.typers))
        await self._port.send_many(snapshot.members, event)

    async def presence(self, room_id: str) -> None:
        """room_state followed by typing_state."""
        await self.room_state(room_id)
        await self.typing_state(room_id)
