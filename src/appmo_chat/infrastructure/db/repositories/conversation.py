from __future__ import annotations

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from appmo_chat.domain.entities.conversation import Conversation
from appmo_chat.domain.value_objects.ids import conversation_room
from appmo_chat.infrastructure.db.models.direct_message import DirectMessageModel


class ConversationReaderRepo:
    """Conversations are not stored; they are grouped out of direct_messages."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_for_user(self, user_id: int, *, limit: int = 50) -> list[Conversation]:
        dm = DirectMessageModel
        peer = case((dm.sender_id == user_id, dm.receiver_id), else_=dm.sender_id)
        last_message_at = func.max(dm.created_at)
        unread = func.count(dm.id).filter(
            (dm.receiver_id == user_id) & dm.read.is_(False)
        )

        stmt = (
            select(
                peer.label("peer_id"),
                last_message_at.label("last_message_at"),
                unread.label("unread_count"),
            )
            .where(or_(dm.sender_id == user_id, dm.receiver_id == user_id))
            .group_by(peer)
            .order_by(last_message_at.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)

        conversations: list[Conversation] = []
        for row in result.all():
            low, high = sorted((user_id, row.peer_id))
            conversations.append(
                Conversation(
                    id=conversation_room(low, high),
                    user1_id=low,
                    user2_id=high,
                    last_message_at=row.last_message_at,
                    unread_count=row.unread_count,
                )
            )
        return conversations
