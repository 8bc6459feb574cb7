"""Chat domain exports."""
from .entity import ChatIdentity, ChatMessage
from .registry import JoinError, RoomRegistry, RoomSnapshot
from .repository import ChatMessageRepository

__all__ = [
    "ChatIdentity",
    "ChatMessage",
    "ChatMessageRepository",
    "JoinError",
    "RoomRegistry",
    "RoomSnapshot",
]
