from __future__ import annotations

from datetime import datetime
from typing import Protocol

from appmo_chat.domain.entities.direct_message import DirectMessage


class DirectMessageReader(Protocol):
    async def list_between(
        self,
        user_id: int,
        peer_id: int,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> list[DirectMessage]:
        """The newest ``limit`` messages of the pair in either direction, oldest first.

        ``cursor`` (from the previous page) restricts the result to older messages.
        """
        ...


class DirectMessageWriter(Protocol):
    async def create(
        self,
        sender_id: int,
        receiver_id: int,
        content: str,
        created_at: datetime,
    ) -> DirectMessage: ...

    async def mark_read_from(self, sender_id: int, receiver_id: int) -> int:
        """Flip unread messages sender -> receiver to read. Return how many changed."""
        ...
