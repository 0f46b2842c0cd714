from __future__ import annotations

import asyncio
import logging
from typing import assert_never

import jwt
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PayloadError

from appmo_chat.api.deps import get_verifier
from appmo_chat.application.dto.principal import Principal
from appmo_chat.application.exceptions import ValidationError
from appmo_chat.application.policies.permissions import clean_content
from appmo_chat.application.ports.clock import Clock, SystemClock
from appmo_chat.config import settings
from appmo_chat.domain.value_objects.ids import USER_ROOM_PREFIX
from appmo_chat.infrastructure.ws.manager import RelayHub
from appmo_chat.infrastructure.ws.protocol import (
    ClientEvent,
    DirectMessageEvent,
    ErrorEvent,
    JoinRoomEvent,
    MessagePayload,
    NewMessageEvent,
    PingEvent,
    PongEvent,
    ReceiveMessageEvent,
    RegisterEvent,
    SendMessageEvent,
    parse_client_event,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

hub = RelayHub()
clock: Clock = SystemClock()

AUTH_FAILED_CLOSE_CODE = 4001


def get_hub() -> RelayHub:
    return hub


async def _authenticate(token: str) -> Principal | None:
    try:
        verifier = get_verifier()
        return await verifier.verify(token)
    except (jwt.PyJWTError, KeyError, ValueError):
        logger.debug("WS auth failed", exc_info=True)
        return None


@router.websocket("/ws")
async def ws_relay(
    websocket: WebSocket,
    token: str | None = Query(None),
) -> None:
    """Relay endpoint.

    ``token`` is optional; when present the socket may only register as the
    token's user.
    """
    principal: Principal | None = None
    if token is not None:
        principal = await _authenticate(token)
        if principal is None:
            await websocket.close(code=AUTH_FAILED_CLOSE_CODE, reason="Authentication failed")
            return

    sid = await hub.connect(websocket)
    heartbeat_task = asyncio.create_task(
        _heartbeat(sid), name=f"ws-heartbeat-{sid}",
    )
    try:
        await _read_loop(websocket, sid, principal)
    except WebSocketDisconnect as exc:
        logger.debug("WS %s closed with code %s", sid, exc.code)
    except Exception:
        logger.exception("WS error for %s", sid)
    finally:
        heartbeat_task.cancel()
        hub.disconnect(sid)


async def _heartbeat(sid: str) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while True:
            await asyncio.sleep(interval)
            await hub.send(sid, PongEvent())
    except asyncio.CancelledError:
        pass


async def _read_loop(ws: WebSocket, sid: str, principal: Principal | None) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            event = parse_client_event(raw)
        except PayloadError as exc:
            logger.debug("WS %s sent an invalid frame: %s", sid, exc)
            await hub.send(sid, ErrorEvent(code="invalid_payload"))
            continue
        await _dispatch(sid, principal, event)


async def _dispatch(sid: str, principal: Principal | None, event: ClientEvent) -> None:
    match event:
        case RegisterEvent():
            await _handle_register(sid, principal, event)
        case JoinRoomEvent():
            await _handle_join(sid, event)
        case SendMessageEvent():
            await _handle_room_message(sid, event)
        case DirectMessageEvent():
            await _handle_direct_message(sid, event)
        case PingEvent():
            await hub.send(sid, PongEvent())
        case _:
            assert_never(event)


async def _handle_register(sid: str, principal: Principal | None, event: RegisterEvent) -> None:
    if principal is not None and principal.user_id != event.user_id:
        await hub.send(sid, ErrorEvent(code="forbidden", detail="userId does not match token"))
        return
    hub.register(sid, event.user_id)
    logger.info("WS %s registered as user %d", sid, event.user_id)


async def _handle_join(sid: str, event: JoinRoomEvent) -> None:
    if event.room.startswith(USER_ROOM_PREFIX):
        await hub.send(sid, ErrorEvent(code="forbidden", detail="Personal rooms are joined via register"))
        return
    hub.join(sid, event.room)


async def _handle_room_message(sid: str, event: SendMessageEvent) -> None:
    if event.room.startswith(USER_ROOM_PREFIX):
        # personal rooms only carry server pushes
        await hub.send(sid, ErrorEvent(code="forbidden", detail="Cannot broadcast into a personal room"))
        return
    extra = {k: v for k, v in (event.model_extra or {}).items() if k != "timestamp"}
    outbound = ReceiveMessageEvent(room=event.room, timestamp=clock.now(), **extra)
    delivered = await hub.broadcast(event.room, outbound)
    logger.debug("Room %s message fanned out to %d sockets", event.room, delivered)


async def _handle_direct_message(sid: str, event: DirectMessageEvent) -> None:
    sender_id = hub.user_of(sid)
    if sender_id is None:
        await hub.send(sid, ErrorEvent(code="not_registered", detail="Send register first"))
        return
    if event.receiver_id == sender_id:
        await hub.send(sid, ErrorEvent(code="invalid_receiver", detail="Cannot message yourself"))
        return

    try:
        content = clean_content(event.content)
    except ValidationError as exc:
        await hub.send(sid, ErrorEvent(code="invalid_content", detail=exc.detail))
        return

    # Not persisted here; durability is the REST endpoint's job.
    outbound = NewMessageEvent(
        message=MessagePayload(
            id=None,
            sender_id=sender_id,
            receiver_id=event.receiver_id,
            content=content,
            read=False,
            created_at=clock.now(),
        )
    )
    await hub.send_to_users({sender_id, event.receiver_id}, outbound)
