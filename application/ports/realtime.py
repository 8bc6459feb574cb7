"""
Realtime port and chat event DTOs (contracts-first).

Inbound client events and outbound server events are closed tagged unions
discriminated by ``type``. The application layer talks to sockets only
through ``BroadcastPort`` so it stays decoupled from the concrete
connection manager (infrastructure).
"""
from __future__ import annotations

from typing import Annotated, Any, Iterable, List, Literal, Optional, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from application.dto import UserResponseDTO, to_utc_z
from shared.constants import SYSTEM_SENDER


# ---------------------------------------------------------------------------
# Client -> server
# ---------------------------------------------------------------------------


class _ClientEvent(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _text_or_none(value: Any) -> Optional[str]:
    # 非字符串字段按缺失处理，由会话层给出对应的错误提示
    return value if isinstance(value, str) else None


class JoinRequest(_ClientEvent):
    type: Literal["join"]
    room: Optional[str] = None
    auth_token: Optional[str] = Field(None, alias="authToken")

    @field_validator("room", "auth_token", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Optional[str]:
        return _text_or_none(value)


class SyncUsernameRequest(_ClientEvent):
    type: Literal["sync_username"]
    auth_token: Optional[str] = Field(None, alias="authToken")

    @field_validator("auth_token", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Optional[str]:
        return _text_or_none(value)


class TypingRequest(_ClientEvent):
    type: Literal["typing"]
    is_typing: Optional[bool] = Field(None, alias="isTyping")


class SendMessageRequest(_ClientEvent):
    type: Literal["message"]
    message: Optional[str] = None


ClientEvent = Annotated[
    Union[JoinRequest, SyncUsernameRequest, TypingRequest, SendMessageRequest],
    Field(discriminator="type"),
]

_client_event_adapter: TypeAdapter = TypeAdapter(ClientEvent)


def parse_client_event(raw: Union[str, bytes]) -> Optional[ClientEvent]:
    """Decode one inbound frame; None for anything that is not a known event."""
    try:
        return _client_event_adapter.validate_json(raw)
    except ValidationError:
        return None


# ---------------------------------------------------------------------------
# Server -> client
# ---------------------------------------------------------------------------


class Participant(BaseModel):
    username: str
    role: str


class HistoryEntry(BaseModel):
    username: str
    role: str
    message: str
    timestamp: str


class RoomOptionsEvent(BaseModel):
    type: Literal["room_options"] = "room_options"
    rooms: List[str]


class JoinedEvent(BaseModel):
    type: Literal["joined"] = "joined"
    room: str
    username: str
    role: str
    user: UserResponseDTO


class HistoryEvent(BaseModel):
    type: Literal["history"] = "history"
    room: str
    messages: List[HistoryEntry] = Field(default_factory=list)


class RoomStateEvent(BaseModel):
    type: Literal["room_state"] = "room_state"
    room: str
    occupants: List[Participant] = Field(default_factory=list)


class TypingStateEvent(BaseModel):
    type: Literal["typing_state"] = "typing_state"
    room: str
    users: List[Participant] = Field(default_factory=list)


class ChatMessageEvent(BaseModel):
    type: Literal["message"] = "message"
    username: str
    role: str
    message: str
    timestamp: str = Field(default_factory=to_utc_z)


class SystemEvent(BaseModel):
    type: Literal["system"] = "system"
    username: str = SYSTEM_SENDER
    message: str
    timestamp: str = Field(default_factory=to_utc_z)
    system: Literal[True] = True


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str


ServerEvent = Union[
    RoomOptionsEvent,
    JoinedEvent,
    HistoryEvent,
    RoomStateEvent,
    TypingStateEvent,
    ChatMessageEvent,
    SystemEvent,
    ErrorEvent,
]


def serialize_event(event: ServerEvent) -> dict:
    return event.model_dump(mode="json", by_alias=True)


class BroadcastPort(Protocol):
    """Best-effort delivery of server events to connections by id.

    Implementations must not await peer I/O while fanning out and must skip
    (never raise for) connections that are gone or not writable.
    """

    async def send(self, connection_id: str, event: ServerEvent) -> None: ...

    async def send_many(self, connection_ids: Iterable[str], event: ServerEvent) -> None: ...


__all__ = [
    "ClientEvent",
    "JoinRequest",
    "SyncUsernameRequest",
    "TypingRequest",
    "SendMessageRequest",
    "parse_client_event",
    "Participant",
    "HistoryEntry",
    "RoomOptionsEvent",
    "JoinedEvent",
    "HistoryEvent",
    "RoomStateEvent",
    "TypingStateEvent",
    "ChatMessageEvent",
    "SystemEvent",
    "ErrorEvent",
    "ServerEvent",
    "serialize_event",
    "BroadcastPort",
]
