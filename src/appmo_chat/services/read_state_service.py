from __future__ import annotations

from appmo_chat.application.dto.principal import Principal
from appmo_chat.application.policies.permissions import assert_distinct_participants
from appmo_chat.application.uow import UnitOfWork
from appmo_chat.domain.events.messages_read import MessagesRead


async def mark_read(
    principal: Principal,
    peer_id: int,
    uow: UnitOfWork,
) -> int:
    """Mark everything ``peer_id`` sent to the caller as read.

    Read receipts are one-way: rows already read are left alone, and nothing
    ever flips back to unread.
    """
    assert_distinct_participants(principal, peer_id)
    updated = await uow.messages_w.mark_read_from(peer_id, principal.user_id)
    if updated:
        event = MessagesRead(reader_id=principal.user_id, peer_id=peer_id, count=updated)
        await uow.outbox.add(event.event_type, event.to_payload())
    await uow.commit()
    return updated
