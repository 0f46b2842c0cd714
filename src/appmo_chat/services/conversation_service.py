from __future__ import annotations

from appmo_chat.application.dto.principal import Principal
from appmo_chat.application.uow import UnitOfWork
from appmo_chat.domain.entities.conversation import Conversation


async def list_conversations(
    principal: Principal,
    limit: int,
    uow: UnitOfWork,
) -> list[Conversation]:
    return await uow.conversations.list_for_user(principal.user_id, limit=limit)
