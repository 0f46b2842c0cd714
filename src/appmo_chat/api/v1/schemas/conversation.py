from __future__ import annotations

from datetime import datetime

from appmo_chat.api.v1.schemas.message import _CamelModel


class ConversationResponse(_CamelModel):
    id: str
    user1_id: int
    user2_id: int
    last_message_at: datetime | None
    unread_count: int
