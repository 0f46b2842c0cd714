from __future__ import annotations

from appmo_chat.domain.entities.direct_message import DirectMessage
from appmo_chat.infrastructure.db.models.direct_message import DirectMessageModel


def model_to_entity(model: DirectMessageModel) -> DirectMessage:
    return DirectMessage(
        id=model.id,
        sender_id=model.sender_id,
        receiver_id=model.receiver_id,
        content=model.content,
        read=model.read,
        created_at=model.created_at,
    )
