"""Client-side connection manager: one relay socket per user, reconnect with backoff."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Protocol

from pydantic import ValidationError as PayloadError
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from appmo_chat.client.backoff import ReconnectPolicy
from appmo_chat.domain.value_objects.enums import ConnectionState
from appmo_chat.infrastructure.ws.protocol import (
    Frame,
    RegisterEvent,
    ServerEvent,
    parse_server_event,
)

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000
GOING_AWAY = 1001
ABNORMAL_CLOSURE = 1006
CLEAN_CLOSE_CODES = frozenset({NORMAL_CLOSURE, GOING_AWAY})

OPEN_TIMEOUT_SECONDS = 10.0


class ClientSocket(Protocol):
    """The slice of ``websockets.asyncio.client.ClientConnection`` the manager uses."""

    @property
    def close_code(self) -> int | None: ...

    async def send(self, message: str) -> None: ...

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


Connector = Callable[[str], Awaitable[ClientSocket]]
Sleep = Callable[[float], Awaitable[None]]
StatusHandler = Callable[[ConnectionState], None]
MessageHandler = Callable[[ServerEvent], None]


async def open_websocket(url: str) -> ClientSocket:
    return await ws_connect(url, open_timeout=OPEN_TIMEOUT_SECONDS)


class ConnectionManager:
    """Owns the relay socket of one logged-in user.

    ``connect`` starts a background task that opens the socket, registers the
    user and fans inbound frames out to message handlers. An abnormal close
    (any code other than 1000/1001, or a failed connection attempt) schedules a
    fresh socket after ``policy.delay(attempt)``; once ``policy.max_attempts``
    reconnects have failed, subscribers get a final ``disconnected`` and the
    manager stops. ``close`` cancels a pending reconnect and closes with 1000.
    """

    def __init__(
        self,
        url: str,
        *,
        policy: ReconnectPolicy | None = None,
        connector: Connector = open_websocket,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._url = url
        self._policy = policy or ReconnectPolicy()
        self._connector = connector
        self._sleep = sleep

        self._user_id: int | None = None
        self._socket: ClientSocket | None = None
        self._task: asyncio.Task[None] | None = None
        self._attempts = 0
        self._state = ConnectionState.DISCONNECTED

        self._status_handlers: list[StatusHandler] = []
        self._message_handlers: list[MessageHandler] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def user_id(self) -> int | None:
        return self._user_id

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def connect(self, user_id: int) -> None:
        """Start the connection loop. A no-op while one is already running."""
        if self.running:
            logger.debug("Socket already connected or connecting (user %s)", self._user_id)
            return
        self._user_id = user_id
        self._attempts = 0
        self._task = asyncio.create_task(self._run(user_id), name=f"relay-client-{user_id}")

    async def send(self, event: Frame) -> bool:
        """Write ``event`` if connected. Returns False, without I/O, otherwise."""
        socket = self._socket
        if self._state is not ConnectionState.CONNECTED or socket is None:
            return False
        try:
            await socket.send(event.to_json())
        except (ConnectionClosed, OSError) as exc:
            logger.warning("Error sending WebSocket message: %s", exc)
            return False
        return True

    async def close(self) -> None:
        task, self._task = self._task, None
        socket = self._socket
        if task is not None and not task.done():
            task.cancel()
        if socket is not None:
            try:
                await socket.close(NORMAL_CLOSURE, "Intentional disconnect")
            except (OSError, WebSocketException) as exc:
                logger.debug("Error closing socket: %s", exc)
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._set_state(ConnectionState.DISCONNECTED)

    async def wait_stopped(self) -> None:
        """Wait until the connection loop exits on its own (clean close or give-up)."""
        if self._task is not None:
            await asyncio.shield(self._task)

    def add_status_handler(self, handler: StatusHandler) -> Callable[[], None]:
        """Subscribe to state changes. ``handler`` is called at once with the current state."""
        self._status_handlers.append(handler)
        self._call(handler, self._state)

        def unsubscribe() -> None:
            if handler in self._status_handlers:
                self._status_handlers.remove(handler)

        return unsubscribe

    def add_message_handler(self, handler: MessageHandler) -> Callable[[], None]:
        self._message_handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._message_handlers:
                self._message_handlers.remove(handler)

        return unsubscribe

    async def _run(self, user_id: int) -> None:
        while True:
            code = await self._session(user_id)
            if code in CLEAN_CLOSE_CODES:
                return

            self._attempts += 1
            if not self._policy.should_retry(self._attempts):
                logger.error(
                    "Could not connect to %s after multiple attempts (%d)",
                    self._url,
                    self._policy.max_attempts,
                )
                self._set_state(ConnectionState.DISCONNECTED, force=True)
                return

            delay = self._policy.delay(self._attempts)
            logger.info(
                "Attempting to reconnect in %.1fs (attempt %d/%d)",
                delay,
                self._attempts,
                self._policy.max_attempts,
            )
            await self._sleep(delay)

    async def _session(self, user_id: int) -> int:
        """Run one socket from open to close. Returns the close code."""
        self._set_state(ConnectionState.CONNECTING)
        try:
            socket = await self._connector(self._url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            logger.warning("Connecting to %s failed: %s", self._url, exc)
            self._set_state(ConnectionState.DISCONNECTED)
            return ABNORMAL_CLOSURE

        self._socket = socket
        self._attempts = 0
        code: int | None = None
        try:
            await socket.send(RegisterEvent(user_id=user_id).to_json())
            self._set_state(ConnectionState.CONNECTED)
            async for raw in socket:
                self._dispatch(raw)
        except ConnectionClosed:
            pass
        except (OSError, WebSocketException) as exc:
            logger.warning("WebSocket error: %s", exc)
            code = ABNORMAL_CLOSURE
        finally:
            self._socket = None

        if code is None:
            code = socket.close_code or ABNORMAL_CLOSURE
        logger.info("WebSocket disconnected with code %d", code)
        self._set_state(ConnectionState.DISCONNECTED)
        return code

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            event = parse_server_event(raw)
        except PayloadError as exc:
            logger.warning("Dropping malformed WebSocket frame: %s", exc)
            return
        for handler in list(self._message_handlers):
            self._call(handler, event)

    def _set_state(self, state: ConnectionState, *, force: bool = False) -> None:
        if state is self._state and not force:
            return
        self._state = state
        for handler in list(self._status_handlers):
            self._call(handler, state)

    @staticmethod
    def _call(handler: Callable[[object], None], arg: object) -> None:
        try:
            handler(arg)
        except Exception:
            logger.exception("Error in connection handler %r", handler)
