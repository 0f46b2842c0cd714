from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(frozen=True, slots=True)
class MessagesRead:
    """``reader_id`` has read everything ``peer_id`` sent them."""

    event_type: ClassVar[str] = "messages_read"

    reader_id: int
    peer_id: int
    count: int

    def to_payload(self) -> dict[str, Any]:
        return {"reader_id": self.reader_id, "peer_id": self.peer_id, "count": self.count}
