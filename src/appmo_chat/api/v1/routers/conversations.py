from __future__ import annotations

from fastapi import APIRouter, Query

from appmo_chat.api.deps import CurrentPrincipal, UoWDep
from appmo_chat.api.v1.schemas.conversation import ConversationResponse
from appmo_chat.services import conversation_service

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


@router.get("", response_model=list[ConversationResponse])
async def list_conversations(
    principal: CurrentPrincipal,
    uow: UoWDep,
    limit: int = Query(50, ge=1, le=100),
) -> list[ConversationResponse]:
    convs = await conversation_service.list_conversations(principal, limit, uow)
    return [ConversationResponse.model_validate(c) for c in convs]
