from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Path, Query, Response

from appmo_chat.api.deps import CurrentPrincipal, UoWDep
from appmo_chat.api.v1.schemas.message import (
    MarkReadResponse,
    MessageResponse,
    SendMessageRequest,
)
from appmo_chat.infrastructure.db.repositories._cursor import encode_cursor
from appmo_chat.services import message_service, read_state_service

router = APIRouter(prefix="/api/messages", tags=["messages"])

UserId = Annotated[int, Path(gt=0)]

NEXT_CURSOR_HEADER = "X-Next-Cursor"


@router.get("/{peer_id}", response_model=list[MessageResponse])
async def list_messages(
    peer_id: UserId,
    principal: CurrentPrincipal,
    uow: UoWDep,
    response: Response,
    cursor: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
) -> list[MessageResponse]:
    messages = await message_service.list_messages(
        principal, peer_id, cursor, limit, uow,
    )
    if len(messages) == limit and messages[0].id is not None:
        # older messages may remain; the cursor fetches the page before this one
        response.headers[NEXT_CURSOR_HEADER] = encode_cursor(messages[0].created_at, messages[0].id)
    return [MessageResponse.model_validate(m) for m in messages]


@router.post("/{recipient_id}", response_model=MessageResponse, status_code=201)
async def send_message(
    recipient_id: UserId,
    body: SendMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MessageResponse:
    msg = await message_service.send_message(principal, recipient_id, body.content, uow)
    return MessageResponse.model_validate(msg)


@router.post("/{recipient_id}/read", response_model=MarkReadResponse)
async def mark_read(
    recipient_id: UserId,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MarkReadResponse:
    updated = await read_state_service.mark_read(principal, recipient_id, uow)
    return MarkReadResponse(updated=updated)
