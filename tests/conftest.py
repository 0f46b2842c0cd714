"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import pytest

from appmo_chat.application.dto.principal import Principal
from appmo_chat.application.repositories.outbox import OutboxRecord
from appmo_chat.domain.entities.conversation import Conversation
from appmo_chat.domain.entities.direct_message import DirectMessage
from appmo_chat.domain.value_objects.ids import conversation_room
from appmo_chat.infrastructure.db.repositories._cursor import decode_cursor


@pytest.fixture
def alice() -> Principal:
    return Principal(user_id=1)


@pytest.fixture
def bob() -> Principal:
    return Principal(user_id=2)


def make_message(
    *,
    sender_id: int = 1,
    receiver_id: int = 2,
    content: str = "hello",
    read: bool = False,
    message_id: int | None = None,
    created_at: datetime | None = None,
) -> DirectMessage:
    return DirectMessage(
        id=message_id,
        sender_id=sender_id,
        receiver_id=receiver_id,
        content=content,
        read=read,
        created_at=created_at or datetime.now(timezone.utc),
    )


@dataclass
class FakeMessageStore:
    _messages: list[DirectMessage] = field(default_factory=list)
    _ids: Any = field(default_factory=lambda: itertools.count(1))

    async def list_between(
        self,
        user_id: int,
        peer_id: int,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> list[DirectMessage]:
        pair = sorted(
            (m for m in self._messages if m.involves(user_id, peer_id)),
            key=lambda m: (m.created_at, m.id or 0),
        )
        if cursor:
            ts, mid = decode_cursor(cursor)
            pair = [m for m in pair if (m.created_at, m.id or 0) < (ts, mid)]
        return pair[-limit:]

    async def create(
        self,
        sender_id: int,
        receiver_id: int,
        content: str,
        created_at: datetime,
    ) -> DirectMessage:
        msg = make_message(
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            message_id=next(self._ids),
            created_at=created_at,
        )
        self._messages.append(msg)
        return msg

    async def mark_read_from(self, sender_id: int, receiver_id: int) -> int:
        updated = 0
        for i, m in enumerate(self._messages):
            if m.sender_id == sender_id and m.receiver_id == receiver_id and not m.read:
                self._messages[i] = DirectMessage(
                    id=m.id,
                    sender_id=m.sender_id,
                    receiver_id=m.receiver_id,
                    content=m.content,
                    read=True,
                    created_at=m.created_at,
                )
                updated += 1
        return updated


@dataclass
class FakeConversationReader:
    _store: FakeMessageStore

    async def list_for_user(self, user_id: int, *, limit: int = 50) -> list[Conversation]:
        by_peer: dict[int, list[DirectMessage]] = {}
        for m in self._store._messages:
            if user_id in (m.sender_id, m.receiver_id):
                peer = m.receiver_id if m.sender_id == user_id else m.sender_id
                by_peer.setdefault(peer, []).append(m)
        conversations = [
            Conversation(
                id=conversation_room(user_id, peer),
                user1_id=min(user_id, peer),
                user2_id=max(user_id, peer),
                last_message_at=max(m.created_at for m in msgs),
                unread_count=sum(1 for m in msgs if m.receiver_id == user_id and not m.read),
            )
            for peer, msgs in by_peer.items()
        ]
        conversations.sort(key=lambda c: c.last_message_at, reverse=True)
        return conversations[:limit]


@dataclass
class FakeOutboxWriter:
    _records: list[dict[str, Any]] = field(default_factory=list)
    _failed: list[tuple[int, datetime]] = field(default_factory=list)
    _sent: list[int] = field(default_factory=list)

    async def add(self, event_type: str, payload: dict[str, Any]) -> None:
        self._records.append({"event_type": event_type, "payload": payload})

    async def fetch_pending(self, batch_size: int, max_attempts: int) -> list[OutboxRecord]:
        return [
            OutboxRecord(id=i, event_type=r["event_type"], payload=r["payload"], attempts=r.get("attempts", 0))
            for i, r in enumerate(self._records, start=1)
            if i not in self._sent and r.get("attempts", 0) < max_attempts
        ][:batch_size]

    async def mark_sent(self, ids: list[int]) -> None:
        self._sent.extend(ids)

    async def mark_failed(self, record_id: int, next_retry_at: datetime) -> None:
        self._failed.append((record_id, next_retry_at))


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    messages: FakeMessageStore = field(default_factory=FakeMessageStore)
    conversations: FakeConversationReader | None = None
    outbox: FakeOutboxWriter = field(default_factory=FakeOutboxWriter)
    _committed: bool = False

    def __post_init__(self) -> None:
        if self.conversations is None:
            self.conversations = FakeConversationReader(self.messages)

    @property
    def messages_w(self) -> FakeMessageStore:
        return self.messages

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self._committed = True

    async def rollback(self) -> None:
        pass


class FakeSocket:
    """Stands in for a websockets ClientConnection."""

    def __init__(self, frames: list[str] | None = None, *, hold: bool = True, close_code: int = 1006) -> None:
        self.sent: list[str] = []
        self.close_code: int | None = None
        self._frames = list(frames or [])
        self._hold = hold
        self._final_code = close_code
        self._closed = asyncio.Event()

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.close_code is None:
            self.close_code = code
        self._closed.set()

    def drop(self, code: int = 1006) -> None:
        """Simulate the peer going away with ``code``."""
        self.close_code = code
        self._closed.set()

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for frame in self._frames:
            yield frame
        if self._hold:
            await self._closed.wait()
        if self.close_code is None:
            self.close_code = self._final_code


class ScriptedConnector:
    """Hands out prepared sockets in order; ``None`` entries fail with OSError."""

    def __init__(self, *outcomes: FakeSocket | None) -> None:
        self._outcomes = list(outcomes)
        self.calls: list[str] = []

    async def __call__(self, url: str) -> FakeSocket:
        self.calls.append(url)
        outcome = self._outcomes.pop(0) if self._outcomes else None
        if outcome is None:
            raise OSError("connection refused")
        return outcome


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


async def wait_for_state(manager, state, timeout: float = 1.0) -> None:
    reached = asyncio.Event()

    def _check(current) -> None:
        if current is state:
            reached.set()

    unsubscribe = manager.add_status_handler(_check)
    try:
        await asyncio.wait_for(reached.wait(), timeout)
    finally:
        unsubscribe()


async def seed_cache(cache, key: str, value) -> None:
    """Load ``value`` into ``cache`` under ``key`` the way a first read would."""

    async def loader():
        return value

    await cache.fetch(key, loader)
