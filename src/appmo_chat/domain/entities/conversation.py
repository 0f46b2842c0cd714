from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Conversation:
    """Derived view over the direct messages of one user pair."""

    id: str
    user1_id: int
    user2_id: int
    last_message_at: datetime | None
    unread_count: int = 0
