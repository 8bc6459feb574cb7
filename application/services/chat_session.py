"""Per-connection chat protocol state machine.

Connected --join--> Joined --close--> Closed. Frames are handled one at a
time in receive order; anything malformed or sent in the wrong state is
ignored without a reply.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from domain.chat.entity import ChatIdentity
from domain.chat.registry import JoinError, RoomRegistry
from application.dto import to_utc_z
from application.ports.realtime import (
    ChatMessageEvent,
    ErrorEvent,
    HistoryEntry,
    HistoryEvent,
    JoinedEvent,
    JoinRequest,
    SendMessageRequest,
    SyncUsernameRequest,
    TypingRequest,
    parse_client_event,
)
from application.services.auth_gate import AuthFailure, AuthGate
from application.services.broadcaster import RoomBroadcaster
from application.services.history_service import HistoryStore
from application.services.user_service import to_response_dto
from core.logging_config import get_logger


logger = get_logger(__name__)


INVALID_ROOM = "Invalid room. Choose room-1, room-2, or room-3."
AUTH_REQUIRED = "Authentication is required."
ALREADY_JOINED = "You are already in a room."
ROLE_CHANGE_REQUIRES_REJOIN = "Role updated in profile. Leave and rejoin for new role to take effect."

_AUTH_ERRORS = {
    AuthFailure.MISSING_CREDENTIAL: AUTH_REQUIRED,
    AuthFailure.INVALID_OR_EXPIRED_CREDENTIAL: "Invalid or expired authentication token.",
    AuthFailure.USER_NOT_FOUND: "Authenticated user was not found.",
    AuthFailure.ROLE_NOT_ASSIGNED: "User role is missing. Update your profile role first.",
}


def role_occupied_message(role: str) -> str:
    return f"This room already has a {role}. Choose a different room."


def _label(identity: ChatIdentity) -> str:
    return f"{identity.username} ({identity.role.value})"


class SessionState(str, Enum):
    CONNECTED = "connected"
    JOINED = "joined"
    CLOSED = "closed"


class ChatSession:
    """会话状态机：只保存状态与连接 id，身份由 RoomRegistry 持有"""

    def __init__(self, connection_id: str, *, registry: RoomRegistry, auth_gate: AuthGate,
                 history: HistoryStore, broadcaster: RoomBroadcaster) -> None:
        self.connection_id = connection_id
        self.state = SessionState.CONNECTED
        self._registry = registry
        self._auth = auth_gate
        self._history = history
        self._broadcast = broadcaster

    @property
    def room(self) -> Optional[str]:
        return self._registry.room_of(self.connection_id)

    @property
    def identity(self) -> Optional[ChatIdentity]:
        return self._registry.identity_of(self.connection_id)

    async def handle(self, raw: Union[str, bytes]) -> None:
        """Dispatch one inbound frame."""
        if self.state is SessionState.CLOSED:
            return
        event = parse_client_event(raw)
        if event is None:
            return

        if isinstance(event, JoinRequest):
            await self._on_join(event)
            return
        if self.state is not SessionState.JOINED:
            return
        if isinstance(event, SyncUsernameRequest):
            await self._on_sync_username(event)
        elif isinstance(event, TypingRequest):
            await self._on_typing(event)
        elif isinstance(event, SendMessageRequest):
            await self._on_message(event)

    async def close(self) -> None:
        """Leave the room (if any) and notify it. Runs once."""
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED

        left = self._registry.leave(self.connection_id)
        if left is None:
            return
        room_id, identity = left
        logger.info("chat_left", room=room_id, user_id=identity.user_id, username=identity.username)
        await self._broadcast.system(room_id, f"{_label(identity)} left the chat")
        await self._broadcast.presence(room_id)

    # -------------------- handlers --------------------
    async def _on_join(self, event: JoinRequest) -> None:
        room_id = (event.room or "").strip()
        if not self._registry.has_room(room_id):
            await self._reject(INVALID_ROOM, reason="invalid_room", room=room_id)
            return

        credential = (event.auth_token or "").strip()
        if not credential:
            await self._reject(AUTH_REQUIRED, reason=AuthFailure.MISSING_CREDENTIAL.value, room=room_id)
            return

        outcome = await self._auth.resolve(credential)
        if not outcome.ok:
            failure = outcome.failure or AuthFailure.INVALID_OR_EXPIRED_CREDENTIAL
            await self._reject(_AUTH_ERRORS[failure], reason=failure.value, room=room_id)
            return

        identity = outcome.identity
        error = await self._registry.try_join(self.connection_id, room_id, identity)
        if error is JoinError.ALREADY_IN_ROOM:
            await self._reject(ALREADY_JOINED, reason=error.value, room=room_id)
            return
        if error is JoinError.ROLE_OCCUPIED:
            await self._reject(role_occupied_message(identity.role.value), reason=error.value, room=room_id)
            return
        if error is JoinError.UNKNOWN_ROOM:
            await self._reject(INVALID_ROOM, reason=error.value, room=room_id)
            return

        if self.state is SessionState.CLOSED:
            # 连接在鉴权期间已关闭，撤销刚分配的席位
            self._registry.leave(self.connection_id)
            return
        self.state = SessionState.JOINED
        logger.info("chat_joined", room=room_id, user_id=identity.user_id,
                    username=identity.username, role=identity.role.value)

        await self._broadcast.to_connection(self.connection_id, JoinedEvent(
            room=room_id,
            username=identity.username,
            role=identity.role.value,
            user=to_response_dto(outcome.user),
        ))
        messages = await self._history.recent(room_id)
        await self._broadcast.to_connection(self.connection_id, HistoryEvent(
            room=room_id,
            messages=[
                HistoryEntry(
                    username=m.sender_username,
                    role=m.sender_role.value,
                    message=m.text,
                    timestamp=to_utc_z(m.created_at),
                )
                for m in messages
            ],
        ))
        await self._broadcast.system(room_id, f"{_label(identity)} joined the chat")
        await self._broadcast.presence(room_id)

    async def _on_sync_username(self, event: SyncUsernameRequest) -> None:
        outcome = await self._auth.resolve(event.auth_token)
        current = self.identity
        if current is None or self.state is not SessionState.JOINED:
            return
        # 资料中角色失效时仍同步用户名
        if not outcome.ok and outcome.failure is not AuthFailure.ROLE_NOT_ASSIGNED:
            return
        user = outcome.user
        if user is None or user.id != current.user_id:
            return

        # 角色在连接期间保持不变
        resolved_role = outcome.identity.role if outcome.ok else None
        if resolved_role != current.role:
            await self._broadcast.to_connection(
                self.connection_id, ErrorEvent(message=ROLE_CHANGE_REQUIRES_REJOIN)
            )
        new_username = user.username
        if new_username == current.username:
            return

        self._registry.rename(self.connection_id, new_username)
        room_id = self.room
        logger.info("chat_username_synced", room=room_id, user_id=current.user_id,
                    old=current.username, new=new_username)
        await self._broadcast.system(room_id, f"{current.username} changed username to {new_username}")
        await self._broadcast.presence(room_id)

    async def _on_typing(self, event: TypingRequest) -> None:
        self._registry.set_typing(self.connection_id, bool(event.is_typing))
        await self._broadcast.typing_state(self.room)

    async def _on_message(self, event: SendMessageRequest) -> None:
        text = event.message.strip() if isinstance(event.message, str) else ""
        if not text:
            return
        room_id = self.room
        identity = self.identity

        if self._registry.set_typing(self.connection_id, False):
            await self._broadcast.typing_state(room_id)

        stored = await self._history.append(room_id, identity, text)
        timestamp = to_utc_z(stored.created_at if stored is not None else None)
        await self._broadcast.to_room(room_id, ChatMessageEvent(
            username=identity.username,
            role=identity.role.value,
            message=text,
            timestamp=timestamp,
        ))

    async def _reject(self, message: str, *, reason: str, room: str) -> None:
        logger.info("chat_join_rejected", reason=reason, room=room)
        await self._broadcast.to_connection(self.connection_id, ErrorEvent(message=message))
