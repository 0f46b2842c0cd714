from __future__ import annotations

import logging
from datetime import datetime, timezone

from appmo_chat.application.dto.principal import Principal
from appmo_chat.application.policies.permissions import (
    assert_distinct_participants,
    clean_content,
)
from appmo_chat.application.uow import UnitOfWork
from appmo_chat.domain.entities.direct_message import DirectMessage
from appmo_chat.domain.events.message_created import DirectMessageCreated

logger = logging.getLogger(__name__)


async def send_message(
    principal: Principal,
    recipient_id: int,
    content: str,
    uow: UnitOfWork,
) -> DirectMessage:
    """Persist a direct message and queue its ``new_message`` push.

    The push travels through the outbox, so it is published only once the
    message row is committed.
    """
    assert_distinct_participants(principal, recipient_id)
    text = clean_content(content)

    msg = await uow.messages_w.create(
        principal.user_id,
        recipient_id,
        text,
        datetime.now(timezone.utc),
    )
    event = DirectMessageCreated(msg)
    await uow.outbox.add(event.event_type, event.to_payload())
    await uow.commit()

    logger.debug("Message %s stored: %d -> %d", msg.id, msg.sender_id, msg.receiver_id)
    return msg


async def list_messages(
    principal: Principal,
    peer_id: int,
    cursor: str | None,
    limit: int,
    uow: UnitOfWork,
) -> list[DirectMessage]:
    assert_distinct_participants(principal, peer_id)
    return await uow.messages.list_between(
        principal.user_id, peer_id, cursor=cursor, limit=limit,
    )
