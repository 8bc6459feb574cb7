"""
聊天消息数据库模型 - append-only
"""
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String
from datetime import datetime, timezone

from .base import Base


class ChatMessageModel(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(String(32), index=True, nullable=False, comment="房间 ID")
    sender_user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False, comment="发送者")
    # 发送时的用户名/角色快照，改名后历史消息保持原样
    sender_username = Column(String(24), nullable=False)
    sender_role = Column(String(20), nullable=False)
    text = Column(String(2000), nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index("ix_chat_messages_room_created", "room_id", "created_at"),
    )

    def __repr__(self):
        return f"<ChatMessageModel(id={self.id}, room_id='{self.room_id}', sender='{self.sender_username}')>"
