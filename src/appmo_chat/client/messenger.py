"""One open direct conversation: socket fast path, REST persistence, cache upkeep."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import httpx

from appmo_chat.client.api import ApiError, ConversationSummary, MessagesApi
from appmo_chat.client.backoff import ReconnectPolicy
from appmo_chat.client.cache import (
    CONVERSATIONS_KEY,
    CacheSynchronizer,
    QueryCache,
    messages_key,
)
from appmo_chat.client.config import ClientSettings
from appmo_chat.client.connection import ConnectionManager, Connector, Sleep, open_websocket
from appmo_chat.domain.value_objects.enums import ConnectionState
from appmo_chat.infrastructure.ws.protocol import DirectMessageEvent, MessagePayload

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 5.0


class DeliveryError(Exception):
    """The REST write for a sent message failed."""


class DirectMessenger:
    """Drives the conversation between ``user_id`` and ``peer_id``.

    Sending goes over the socket for low latency (when connected) and always
    through the REST API for durability. The two paths are not atomic: if the
    REST call fails after the socket frame went out, the frame is not recalled.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        api: MessagesApi,
        cache: QueryCache,
        *,
        user_id: int,
        peer_id: int,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._connection = connection
        self._api = api
        self._cache = cache
        self.user_id = user_id
        self.peer_id = peer_id
        self._poll_interval = poll_interval
        self._sleep = sleep

        self._sync = CacheSynchronizer(
            cache, user_id, peer_id, on_conversation_message=self._on_conversation_message,
        )
        self._last_state: ConnectionState | None = None
        self._unsubscribers: list[Callable[[], None]] = []
        self._background: set[asyncio.Task[None]] = set()
        self._poll_task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings,
        token: str,
        *,
        user_id: int,
        peer_id: int,
        connector: Connector = open_websocket,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> DirectMessenger:
        """Wire a messenger that owns its socket, REST client and cache.

        The same bearer token authenticates the REST calls and the socket.
        """
        connection = ConnectionManager(
            settings.socket_url(token),
            policy=ReconnectPolicy.from_settings(settings),
            connector=connector,
        )
        api = MessagesApi(
            settings.BASE_URL,
            token,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )
        return cls(
            connection,
            api,
            QueryCache(),
            user_id=user_id,
            peer_id=peer_id,
            poll_interval=settings.POLL_INTERVAL_SECONDS,
        )

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    @property
    def refetch_interval(self) -> float | None:
        """Polling period while the socket is down; None when pushes are live."""
        if self._connection.state is ConnectionState.CONNECTED:
            return None
        return self._poll_interval

    async def start(self, *, poll: bool = True) -> None:
        """Subscribe to the socket, open it if needed, and mark the conversation read."""
        self._unsubscribers.append(self._connection.add_status_handler(self._on_status))
        self._unsubscribers.append(self._connection.add_message_handler(self._sync.handle))
        if not self._connection.running:
            self._connection.connect(self.user_id)
        if poll:
            self._poll_task = asyncio.create_task(self.poll(), name=f"dm-poll-{self.peer_id}")
        try:
            await self.mark_read()
        except ApiError as exc:
            logger.warning("Marking conversation with %d read failed: %s", self.peer_id, exc)

    async def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

        tasks = list(self._background)
        if self._poll_task is not None:
            tasks.append(self._poll_task)
            self._poll_task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def aclose(self) -> None:
        """Stop, then close the socket and the HTTP client."""
        await self.stop()
        await self._connection.close()
        await self._api.aclose()

    async def send(self, content: str) -> MessagePayload | None:
        text = content.strip()
        if not text:
            return None

        if self._connection.state is ConnectionState.CONNECTED:
            await self._connection.send(DirectMessageEvent(receiver_id=self.peer_id, content=text))

        try:
            message = await self._api.send_message(self.peer_id, text)
        except ApiError as exc:
            logger.error("Error sending message to %d: %s", self.peer_id, exc)
            raise DeliveryError(exc.detail) from exc

        self._cache.invalidate(messages_key(self.peer_id))
        self._cache.invalidate(CONVERSATIONS_KEY)
        return message

    async def messages(self) -> list[MessagePayload]:
        return await self._cache.fetch(
            messages_key(self.peer_id),
            lambda: self._api.list_messages(self.peer_id),
        )

    async def conversations(self) -> list[ConversationSummary]:
        return await self._cache.fetch(CONVERSATIONS_KEY, self._api.list_conversations)

    async def mark_read(self) -> int:
        updated = await self._api.mark_read(self.peer_id)
        self._cache.invalidate(CONVERSATIONS_KEY)
        return updated

    async def poll(self) -> None:
        """Fixed-interval re-fetch, active only while the socket is not connected."""
        while True:
            await self._sleep(self._poll_interval)
            if self.refetch_interval is None:
                continue
            self._cache.invalidate(messages_key(self.peer_id))
            try:
                await self.messages()
            except ApiError as exc:
                logger.warning("Polling messages with %d failed: %s", self.peer_id, exc)

    def _on_status(self, state: ConnectionState) -> None:
        previous, self._last_state = self._last_state, state
        if state is ConnectionState.CONNECTED and previous is not None and previous is not state:
            # pushes sent while we were away are lost; re-read
            self._cache.invalidate(messages_key(self.peer_id))
            self._cache.invalidate(CONVERSATIONS_KEY)

    def _on_conversation_message(self, message: MessagePayload) -> None:
        if message.sender_id != self.peer_id:
            return
        task = asyncio.get_running_loop().create_task(self._mark_read_quietly())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _mark_read_quietly(self) -> None:
        try:
            await self.mark_read()
        except ApiError as exc:
            logger.warning("Marking conversation with %d read failed: %s", self.peer_id, exc)
