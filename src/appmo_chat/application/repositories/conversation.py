from __future__ import annotations

from typing import Protocol

from appmo_chat.domain.entities.conversation import Conversation


class ConversationReader(Protocol):
    async def list_for_user(self, user_id: int, *, limit: int = 50) -> list[Conversation]:
        """Aggregate the user's direct messages into one row per peer."""
        ...
