"""
Chat domain entities: persisted room messages and the per-connection identity
bound at join time.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from shared.constants import UserRole, is_chat_room


DEFAULT_MESSAGE_MAX_LENGTH = 2000


@dataclass(frozen=True)
class ChatIdentity:
    """Who a joined connection speaks as. Replaced, never mutated."""

    user_id: int
    username: str
    role: UserRole


@dataclass
class ChatMessage:
    """A message sent to a room; immutable once stored."""

    room_id: str
    sender_user_id: int
    sender_username: str
    sender_role: UserRole
    text: str
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.sender_role = UserRole(self.sender_role)

    @classmethod
    def compose(cls, room_id: str, identity: ChatIdentity, text: str,
                *, max_length: int = DEFAULT_MESSAGE_MAX_LENGTH) -> "ChatMessage":
        """业务规则：新消息必须属于固定房间，文本去除首尾空白后非空且不超长"""
        clean = (text or "").strip()
        if not is_chat_room(room_id):
            raise ValueError(f"Unknown room: {room_id}")
        if not clean:
            raise ValueError("Message text must not be empty")
        if len(clean) > max_length:
            raise ValueError(f"Message text exceeds {max_length} characters")
        return cls(
            room_id=room_id,
            sender_user_id=identity.user_id,
            sender_username=identity.username,
            sender_role=identity.role,
            text=clean,
        )
