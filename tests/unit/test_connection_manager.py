from __future__ import annotations

import asyncio
import json

import pytest

from appmo_chat.client.connection import ConnectionManager
from appmo_chat.domain.value_objects.enums import ConnectionState
from appmo_chat.infrastructure.ws.protocol import DirectMessageEvent, NewMessageEvent
from tests.conftest import FakeSocket, RecordingSleep, ScriptedConnector, wait_for_state

URL = "ws://relay.test/ws"


def _manager(connector, sleep=None) -> ConnectionManager:
    return ConnectionManager(URL, connector=connector, sleep=sleep or RecordingSleep())


@pytest.mark.asyncio
async def test_connect_registers_user_and_reports_connected():
    socket = FakeSocket()
    manager = _manager(ScriptedConnector(socket))
    states: list[ConnectionState] = []
    manager.add_status_handler(states.append)

    manager.connect(7)
    await wait_for_state(manager, ConnectionState.CONNECTED)

    assert json.loads(socket.sent[0]) == {"type": "register", "userId": 7}
    assert states == [
        ConnectionState.DISCONNECTED,
        ConnectionState.CONNECTING,
        ConnectionState.CONNECTED,
    ]
    await manager.close()


@pytest.mark.asyncio
async def test_second_connect_does_not_open_another_socket():
    connector = ScriptedConnector(FakeSocket(), FakeSocket())
    manager = _manager(connector)

    manager.connect(7)
    await wait_for_state(manager, ConnectionState.CONNECTED)
    manager.connect(7)
    await asyncio.sleep(0)

    assert len(connector.calls) == 1
    await manager.close()


@pytest.mark.asyncio
async def test_send_is_noop_when_not_connected():
    manager = _manager(ScriptedConnector())

    sent = await manager.send(DirectMessageEvent(receiver_id=2, content="hi"))

    assert sent is False


@pytest.mark.asyncio
async def test_send_writes_frame_when_connected():
    socket = FakeSocket()
    manager = _manager(ScriptedConnector(socket))
    manager.connect(1)
    await wait_for_state(manager, ConnectionState.CONNECTED)

    sent = await manager.send(DirectMessageEvent(receiver_id=2, content="hi"))

    assert sent is True
    assert json.loads(socket.sent[-1]) == {"type": "direct_message", "receiverId": 2, "content": "hi"}
    await manager.close()


@pytest.mark.asyncio
async def test_inbound_frames_reach_message_handlers_and_bad_frames_are_dropped():
    frames = [
        "not json",
        json.dumps({"type": "mystery"}),
        json.dumps({
            "type": "new_message",
            "message": {
                "id": 5, "senderId": 2, "receiverId": 1, "content": "yo",
                "read": False, "createdAt": "2024-01-01T00:00:00+00:00",
            },
        }),
    ]
    socket = FakeSocket(frames)
    manager = _manager(ScriptedConnector(socket))
    first: list = []
    second: list = []
    manager.add_message_handler(first.append)
    manager.add_message_handler(second.append)

    manager.connect(1)
    await wait_for_state(manager, ConnectionState.CONNECTED)
    await asyncio.sleep(0)

    assert len(first) == len(second) == 1
    assert isinstance(first[0], NewMessageEvent)
    assert first[0].message.content == "yo"
    assert manager.state is ConnectionState.CONNECTED
    await manager.close()


@pytest.mark.asyncio
async def test_failing_handler_does_not_block_others():
    socket = FakeSocket([json.dumps({"type": "pong"})])
    manager = _manager(ScriptedConnector(socket))
    received: list = []

    def _boom(_event):
        raise RuntimeError("boom")

    manager.add_message_handler(_boom)
    manager.add_message_handler(received.append)
    manager.connect(1)
    await wait_for_state(manager, ConnectionState.CONNECTED)
    await asyncio.sleep(0)

    assert len(received) == 1
    await manager.close()


@pytest.mark.asyncio
async def test_unsubscribe_stops_notifications():
    socket = FakeSocket([json.dumps({"type": "pong"})])
    manager = _manager(ScriptedConnector(socket))
    received: list = []
    unsubscribe = manager.add_message_handler(received.append)
    unsubscribe()
    unsubscribe()

    manager.connect(1)
    await wait_for_state(manager, ConnectionState.CONNECTED)
    await asyncio.sleep(0)

    assert received == []
    await manager.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("code", [1000, 1001])
async def test_clean_close_does_not_reconnect(code):
    socket = FakeSocket()
    sleep = RecordingSleep()
    connector = ScriptedConnector(socket, FakeSocket())
    manager = _manager(connector, sleep)
    manager.connect(1)
    await wait_for_state(manager, ConnectionState.CONNECTED)

    socket.drop(code)
    await manager.wait_stopped()

    assert sleep.delays == []
    assert len(connector.calls) == 1
    assert manager.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
@pytest.mark.parametrize("code", [1002, 1006, 1011, 4000])
async def test_abnormal_close_schedules_reconnect_within_bounds(code):
    socket = FakeSocket()
    replacement = FakeSocket()
    sleep = RecordingSleep()
    connector = ScriptedConnector(socket, replacement)
    manager = _manager(connector, sleep)
    manager.connect(1)
    await wait_for_state(manager, ConnectionState.CONNECTED)

    socket.drop(code)
    await wait_for_state(manager, ConnectionState.CONNECTING)
    await wait_for_state(manager, ConnectionState.CONNECTED)

    assert len(sleep.delays) == 1
    assert 1.0 <= sleep.delays[0] <= 16.0
    assert len(connector.calls) == 2
    assert json.loads(replacement.sent[0]) == {"type": "register", "userId": 1}
    await manager.close()


@pytest.mark.asyncio
async def test_gives_up_after_five_failed_reconnects():
    sleep = RecordingSleep()
    connector = ScriptedConnector()  # every attempt refused
    manager = _manager(connector, sleep)
    states: list[ConnectionState] = []
    manager.add_status_handler(states.append)

    manager.connect(1)
    await manager.wait_stopped()

    assert sleep.delays == [1.0, 2.0, 4.0, 8.0, 16.0]
    assert len(connector.calls) == 6  # first try + five reconnects
    assert manager.state is ConnectionState.DISCONNECTED
    # terminal notification is delivered even though the state did not change
    assert states[-2:] == [ConnectionState.DISCONNECTED, ConnectionState.DISCONNECTED]
    assert not manager.running


@pytest.mark.asyncio
async def test_successful_open_resets_attempts():
    connected = FakeSocket()
    sleep = RecordingSleep()
    connector = ScriptedConnector(None, None, connected, None)
    manager = _manager(connector, sleep)

    manager.connect(1)
    await wait_for_state(manager, ConnectionState.CONNECTED)
    assert manager.attempts == 0

    connected.drop(1006)
    await wait_for_state(manager, ConnectionState.CONNECTING)
    await asyncio.sleep(0)

    # third reconnect would wait 4s; after the reset it starts again at 1s
    assert sleep.delays[:2] == [1.0, 2.0]
    assert sleep.delays[2] == 1.0
    await manager.close()


@pytest.mark.asyncio
async def test_close_before_reconnect_fires_cancels_timer():
    blocker = asyncio.Event()
    delays: list[float] = []

    async def never_fires(delay: float) -> None:
        delays.append(delay)
        await blocker.wait()

    socket = FakeSocket()
    connector = ScriptedConnector(socket, FakeSocket())
    manager = ConnectionManager(URL, connector=connector, sleep=never_fires)
    manager.connect(1)
    await wait_for_state(manager, ConnectionState.CONNECTED)

    socket.drop(1006)
    while not delays:
        await asyncio.sleep(0)
    await manager.close()
    blocker.set()
    await asyncio.sleep(0)

    assert len(connector.calls) == 1
    assert manager.state is ConnectionState.DISCONNECTED
    assert not manager.running


@pytest.mark.asyncio
async def test_close_uses_normal_closure():
    socket = FakeSocket()
    sleep = RecordingSleep()
    manager = _manager(ScriptedConnector(socket), sleep)
    manager.connect(1)
    await wait_for_state(manager, ConnectionState.CONNECTED)

    await manager.close()

    assert socket.close_code == 1000
    assert sleep.delays == []
    assert manager.state is ConnectionState.DISCONNECTED
