from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class DirectMessage:
    id: int | None
    sender_id: int
    receiver_id: int
    content: str
    read: bool
    created_at: datetime

    def involves(self, user_a: int, user_b: int) -> bool:
        """True if the message was exchanged between the two users, in either direction."""
        return {self.sender_id, self.receiver_id} == {user_a, user_b}
