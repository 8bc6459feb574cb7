"""In-process room registry.

Owns the fixed set of chat rooms and, per room, its members, its role
occupancy (one connection per role) and its current typers. Connections are
referenced by their opaque id only; sockets stay with the transport layer.

Single event loop only. The join check-and-set runs under a per-room
``asyncio.Lock``; every other mutation is a synchronous step and therefore
cannot interleave with another coroutine.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from shared.constants import CHAT_ROOMS, UserRole

from .entity import ChatIdentity


class JoinError(str, Enum):
    UNKNOWN_ROOM = "unknown_room"
    ALREADY_IN_ROOM = "already_in_room"
    ROLE_OCCUPIED = "role_occupied"


@dataclass(frozen=True)
class RoomSnapshot:
    """Read-only view of a room used to build broadcasts."""

    room_id: str
    members: Tuple[str, ...]
    occupants: Tuple[ChatIdentity, ...]
    typers: Tuple[ChatIdentity, ...]


class _Room:
    __slots__ = ("id", "members", "typers", "occupancy", "lock")

    def __init__(self, room_id: str) -> None:
        self.id = room_id
        # connection_id -> identity, in join order
        self.members: Dict[str, ChatIdentity] = {}
        # ordered set of connection ids
        self.typers: Dict[str, None] = {}
        self.occupancy: Dict[UserRole, Optional[str]] = {role: None for role in UserRole}
        self.lock = asyncio.Lock()


class RoomRegistry:
    """Membership, occupancy and typing state for every fixed room."""

    def __init__(self, room_ids: Iterable[str] = CHAT_ROOMS) -> None:
        self._rooms: Dict[str, _Room] = {rid: _Room(rid) for rid in room_ids}
        # connection_id -> room_id; a connection joins at most once
        self._room_of: Dict[str, str] = {}

    @property
    def room_ids(self) -> Tuple[str, ...]:
        return tuple(self._rooms)

    def has_room(self, room_id: str) -> bool:
        return room_id in self._rooms

    def room_of(self, connection_id: str) -> Optional[str]:
        return self._room_of.get(connection_id)

    def identity_of(self, connection_id: str) -> Optional[ChatIdentity]:
        room_id = self._room_of.get(connection_id)
        if room_id is None:
            return None
        return self._rooms[room_id].members.get(connection_id)

    async def try_join(self, connection_id: str, room_id: str,
                       identity: ChatIdentity) -> Optional[JoinError]:
        """Seat the connection in the room under its role.

        Returns None on success, otherwise the reason the join was refused.
        """
        room = self._rooms.get(room_id)
        if room is None:
            return JoinError.UNKNOWN_ROOM
        async with room.lock:
            if connection_id in self._room_of:
                return JoinError.ALREADY_IN_ROOM
            if room.occupancy[identity.role] is not None:
                return JoinError.ROLE_OCCUPIED
            room.members[connection_id] = identity
            room.occupancy[identity.role] = connection_id
            self._room_of[connection_id] = room_id
        return None

    def leave(self, connection_id: str) -> Optional[Tuple[str, ChatIdentity]]:
        """Remove the connection from its room. Idempotent.

        Returns (room_id, identity) when something was removed.
        """
        room_id = self._room_of.pop(connection_id, None)
        if room_id is None:
            return None
        room = self._rooms[room_id]
        room.typers.pop(connection_id, None)
        identity = room.members.pop(connection_id, None)
        if identity is None:
            return None
        if room.occupancy.get(identity.role) == connection_id:
            room.occupancy[identity.role] = None
        return room_id, identity

    def set_typing(self, connection_id: str, is_typing: bool) -> bool:
        """Add/remove the connection from its room's typers; True if changed."""
        room_id = self._room_of.get(connection_id)
        if room_id is None:
            return False
        typers = self._rooms[room_id].typers
        if is_typing:
            if connection_id in typers:
                return False
            typers[connection_id] = None
            return True
        if connection_id not in typers:
            return False
        del typers[connection_id]
        return True

    def rename(self, connection_id: str, username: str) -> Optional[ChatIdentity]:
        """Swap the bound identity for one with a new username.

        User id and role never change for a joined connection. Returns the
        previous identity, or None when the connection is not in a room.
        """
        room_id = self._room_of.get(connection_id)
        if room_id is None:
            return None
        members = self._rooms[room_id].members
        previous = members[connection_id]
        members[connection_id] = replace(previous, username=username)
        return previous

    def occupant(self, room_id: str, role: UserRole) -> Optional[str]:
        room = self._rooms.get(room_id)
        return room.occupancy[role] if room else None

    def snapshot(self, room_id: str) -> Optional[RoomSnapshot]:
        room = self._rooms.get(room_id)
        if room is None:
            return None
        stale = [cid for cid in room.typers if cid not in room.members]
        for cid in stale:
            del room.typers[cid]
        return RoomSnapshot(
            room_id=room_id,
            members=tuple(room.members),
            occupants=tuple(room.members.values()),
            typers=tuple(room.members[cid] for cid in room.typers),
        )
