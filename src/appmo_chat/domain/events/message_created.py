from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from appmo_chat.domain.entities.direct_message import DirectMessage


@dataclass(frozen=True, slots=True)
class DirectMessageCreated:
    event_type: ClassVar[str] = "new_message"

    message: DirectMessage

    def to_payload(self) -> dict[str, Any]:
        m = self.message
        return {
            "message": {
                "id": m.id,
                "sender_id": m.sender_id,
                "receiver_id": m.receiver_id,
                "content": m.content,
                "read": m.read,
                "created_at": m.created_at.isoformat(),
            },
        }
