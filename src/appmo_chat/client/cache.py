"""Client query cache and the synchronizer that keeps it honest.

Pushed messages are never merged into the cache. A relevant push only marks
queries stale so the next read goes back to the REST API.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from appmo_chat.infrastructure.ws.protocol import (
    MessagePayload,
    MessagesReadEvent,
    NewMessageEvent,
    ServerEvent,
)

logger = logging.getLogger(__name__)

CONVERSATIONS_KEY = "/api/conversations"


def messages_key(peer_id: int) -> str:
    return f"/api/messages/{peer_id}"


@dataclass(slots=True)
class _Entry:
    value: Any
    stale: bool = False


class QueryCache:
    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}

    async def fetch(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value, loading it when missing or stale."""
        entry = self._entries.get(key)
        if entry is not None and not entry.stale:
            return entry.value
        value = await loader()
        self._entries[key] = _Entry(value)
        return value

    def invalidate(self, key: str) -> None:
        entry = self._entries.get(key)
        if entry is not None:
            entry.stale = True
        logger.debug("Invalidated %s", key)

    def is_stale(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is None or entry.stale


class CacheSynchronizer:
    """Message handler for one open conversation between ``user_id`` and ``peer_id``."""

    def __init__(
        self,
        cache: QueryCache,
        user_id: int,
        peer_id: int,
        on_conversation_message: Callable[[MessagePayload], None] | None = None,
    ) -> None:
        self._cache = cache
        self.user_id = user_id
        self.peer_id = peer_id
        self._on_conversation_message = on_conversation_message

    def is_open_conversation(self, sender_id: int, receiver_id: int) -> bool:
        return (sender_id, receiver_id) in (
            (self.peer_id, self.user_id),
            (self.user_id, self.peer_id),
        )

    def handle(self, event: ServerEvent) -> None:
        match event:
            case NewMessageEvent(message=message):
                if self.is_open_conversation(message.sender_id, message.receiver_id):
                    self._cache.invalidate(messages_key(self.peer_id))
                    if self._on_conversation_message is not None:
                        self._on_conversation_message(message)
                self._cache.invalidate(CONVERSATIONS_KEY)
            case MessagesReadEvent(reader_id=reader_id, peer_id=peer_id):
                if self.is_open_conversation(reader_id, peer_id):
                    self._cache.invalidate(messages_key(self.peer_id))
                self._cache.invalidate(CONVERSATIONS_KEY)
            case _:
                pass
