"""In-process WebSocket relay: socket ids, room membership, fan-out."""
from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable

from fastapi import WebSocket

from appmo_chat.domain.value_objects.ids import user_room
from appmo_chat.infrastructure.ws.protocol import Frame

logger = logging.getLogger(__name__)


class RelayHub:
    """Tracks sockets by opaque id and groups them into broadcast rooms.

    Only the event loop touches these tables, so no locking is needed.
    """

    def __init__(self) -> None:
        self._sockets: dict[str, WebSocket] = {}
        self._rooms: dict[str, set[str]] = {}
        self._memberships: dict[str, set[str]] = {}
        self._users: dict[str, int] = {}

    async def connect(self, ws: WebSocket) -> str:
        await ws.accept()
        sid = uuid.uuid4().hex
        self._sockets[sid] = ws
        self._memberships[sid] = set()
        logger.debug("WS connected: %s (total=%d)", sid, len(self._sockets))
        return sid

    def disconnect(self, sid: str) -> None:
        if self._sockets.pop(sid, None) is None:
            return
        for room in self._memberships.pop(sid, set()):
            self._discard(room, sid)
        self._users.pop(sid, None)
        logger.debug("WS disconnected: %s (total=%d)", sid, len(self._sockets))

    def join(self, sid: str, room: str) -> None:
        if sid not in self._sockets:
            return
        self._rooms.setdefault(room, set()).add(sid)
        self._memberships[sid].add(room)
        logger.debug("WS %s joined room %s", sid, room)

    def leave(self, sid: str, room: str) -> None:
        rooms = self._memberships.get(sid)
        if rooms is None or room not in rooms:
            return
        rooms.discard(room)
        self._discard(room, sid)

    def register(self, sid: str, user_id: int) -> None:
        """Bind the socket to a user and move it into that user's personal room."""
        previous = self._users.get(sid)
        if previous is not None and previous != user_id:
            self.leave(sid, user_room(previous))
        self._users[sid] = user_id
        self.join(sid, user_room(user_id))

    @property
    def connection_count(self) -> int:
        return len(self._sockets)

    def user_of(self, sid: str) -> int | None:
        return self._users.get(sid)

    def rooms_of(self, sid: str) -> frozenset[str]:
        return frozenset(self._memberships.get(sid, ()))

    def members(self, room: str) -> frozenset[str]:
        return frozenset(self._rooms.get(room, ()))

    async def send(self, sid: str, event: Frame) -> None:
        await self._deliver([sid], event.to_json())

    async def broadcast(self, room: str, event: Frame) -> int:
        """Send to every socket in ``room``, sender included. Returns the fan-out size."""
        sids = list(self._rooms.get(room, ()))
        await self._deliver(sids, event.to_json())
        return len(sids)

    async def send_to_users(self, user_ids: Iterable[int], event: Frame) -> int:
        sids: set[str] = set()
        for user_id in user_ids:
            sids |= self._rooms.get(user_room(user_id), set())
        await self._deliver(list(sids), event.to_json())
        return len(sids)

    async def _deliver(self, sids: list[str], raw: str) -> None:
        dead: list[str] = []
        for sid in sids:
            ws = self._sockets.get(sid)
            if ws is None:
                continue
            try:
                await ws.send_text(raw)
            except Exception:
                logger.debug("WS send to %s failed, dropping socket", sid, exc_info=True)
                dead.append(sid)
        for sid in dead:
            self.disconnect(sid)

    def _discard(self, room: str, sid: str) -> None:
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(sid)
        if not members:
            del self._rooms[room]
