"""
聊天消息仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from domain.chat.entity import ChatMessage
from domain.chat.repository import ChatMessageRepository
from infrastructure.models.chat_message import ChatMessageModel


class SQLAlchemyChatMessageRepository(ChatMessageRepository):
    """聊天消息仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ChatMessageModel) -> ChatMessage:
        return ChatMessage(
            id=model.id,
            room_id=model.room_id,
            sender_user_id=model.sender_user_id,
            sender_username=model.sender_username,
            sender_role=model.sender_role,
            text=model.text,
            created_at=model.created_at,
        )

    async def create(self, message: ChatMessage) -> ChatMessage:
        db_message = ChatMessageModel(
            room_id=message.room_id,
            sender_user_id=message.sender_user_id,
            sender_username=message.sender_username,
            sender_role=message.sender_role.value,
            text=message.text,
        )
        self.session.add(db_message)
        await self.session.flush()
        await self.session.refresh(db_message)
        return self._to_entity(db_message)

    async def list_recent(self, room_id: str, limit: int) -> List[ChatMessage]:
        # 取最新的 limit 条（id 作为同一时间戳下的稳定次序），再翻转为时间正序
        query = (
            select(ChatMessageModel)
            .where(ChatMessageModel.room_id == room_id)
            .order_by(ChatMessageModel.created_at.desc(), ChatMessageModel.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(query)
        rows = result.scalars().all()
        return [self._to_entity(row) for row in reversed(rows)]
