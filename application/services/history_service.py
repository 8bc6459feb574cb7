"""
Chat history store: append-only persistence plus bounded replay.
"""
from __future__ import annotations

from typing import Callable, List, Optional

from domain.chat.entity import ChatIdentity, ChatMessage
from domain.common.unit_of_work import AbstractUnitOfWork
from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)


class HistoryStore:
    """Persistence is never allowed to break live chat: ``append`` reports a
    failure as ``None`` after logging it, and the caller keeps broadcasting.
    """

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork], *,
                 default_limit: Optional[int] = None,
                 max_length: Optional[int] = None) -> None:
        self._uow_factory = uow_factory
        self.default_limit = default_limit or settings.CHAT_HISTORY_LIMIT
        self._max_length = max_length or settings.CHAT_MESSAGE_MAX_LENGTH

    async def append(self, room_id: str, sender: ChatIdentity, text: str) -> Optional[ChatMessage]:
        try:
            message = ChatMessage.compose(room_id, sender, text, max_length=self._max_length)
            async with self._uow_factory() as uow:
                return await uow.message_repository.create(message)
        except Exception as exc:
            logger.error(
                "chat_message_persist_failed",
                room=room_id,
                user_id=sender.user_id,
                error=str(exc),
            )
            return None

    async def recent(self, room_id: str, limit: Optional[int] = None) -> List[ChatMessage]:
        """Newest ``limit`` messages of the room, oldest first."""
        if limit is None:
            limit = self.default_limit
        if limit <= 0:
            return []
        async with self._uow_factory(readonly=True) as uow:
            return await uow.message_repository.list_recent(room_id, limit)
