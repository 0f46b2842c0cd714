from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from appmo_chat.domain.entities.direct_message import DirectMessage
from appmo_chat.infrastructure.db.mappers import direct_message as mapper
from appmo_chat.infrastructure.db.models.direct_message import DirectMessageModel
from appmo_chat.infrastructure.db.repositories._cursor import decode_cursor


def _between(user_id: int, peer_id: int):
    return or_(
        and_(DirectMessageModel.sender_id == user_id, DirectMessageModel.receiver_id == peer_id),
        and_(DirectMessageModel.sender_id == peer_id, DirectMessageModel.receiver_id == user_id),
    )


class DirectMessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_between(
        self,
        user_id: int,
        peer_id: int,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> list[DirectMessage]:
        """Newest ``limit`` messages of the pair, returned oldest first.

        ``cursor`` points at the oldest message already shown; only messages
        before it are returned.
        """
        stmt = (
            select(DirectMessageModel)
            .where(_between(user_id, peer_id))
            .order_by(DirectMessageModel.created_at.desc(), DirectMessageModel.id.desc())
            .limit(limit)
        )
        if cursor:
            ts, mid = decode_cursor(cursor)
            stmt = stmt.where(
                (DirectMessageModel.created_at < ts)
                | ((DirectMessageModel.created_at == ts) & (DirectMessageModel.id < mid))
            )
        result = await self._session.execute(stmt)
        rows = result.scalars().all()
        return [mapper.model_to_entity(m) for m in reversed(rows)]


class DirectMessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        sender_id: int,
        receiver_id: int,
        content: str,
        created_at: datetime,
    ) -> DirectMessage:
        model = DirectMessageModel(
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            read=False,
            created_at=created_at,
        )
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def mark_read_from(self, sender_id: int, receiver_id: int) -> int:
        stmt = (
            update(DirectMessageModel)
            .where(
                DirectMessageModel.sender_id == sender_id,
                DirectMessageModel.receiver_id == receiver_id,
                DirectMessageModel.read.is_(False),
            )
            .values(read=True)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0
