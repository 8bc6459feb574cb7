"""Infrastructure models package exports."""
from .base import Base, metadata
from .user import UserModel
from .chat_message import ChatMessageModel

__all__ = [
    "Base",
    "metadata",
    "UserModel",
    "ChatMessageModel",
]
