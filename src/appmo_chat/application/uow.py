from __future__ import annotations

from typing import Protocol

from appmo_chat.application.repositories.conversation import ConversationReader
from appmo_chat.application.repositories.direct_message import (
    DirectMessageReader,
    DirectMessageWriter,
)
from appmo_chat.application.repositories.outbox import OutboxWriter


class UnitOfWork(Protocol):
    conversations: ConversationReader
    messages: DirectMessageReader
    messages_w: DirectMessageWriter
    outbox: OutboxWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...
