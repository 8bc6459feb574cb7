"""
聊天消息仓储接口 - append-only
"""
from abc import ABC, abstractmethod
from typing import List
from .entity import ChatMessage


class ChatMessageRepository(ABC):
    """Messages are only ever appended and read back; no update/delete."""

    @abstractmethod
    async def create(self, message: ChatMessage) -> ChatMessage:
        """保存消息，返回带有 id 与 created_at 的消息"""
        pass

    @abstractmethod
    async def list_recent(self, room_id: str, limit: int) -> List[ChatMessage]:
        """The newest `limit` messages of a room, oldest first."""
        pass
