"""Integration smoke tests for REST API (using mocked UoW via dependency override)."""
from __future__ import annotations

import jwt
import pytest
from fastapi.testclient import TestClient

from appmo_chat.api.deps import get_uow
from appmo_chat.app import create_app
from appmo_chat.config import settings
from tests.conftest import FakeUoW, make_message


def _make_token(sub: int = 1, roles: list | None = None) -> str:
    return jwt.encode(
        {"sub": str(sub), "roles": roles or []},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def _auth(sub: int = 1) -> dict[str, str]:
    return {"Authorization": f"Bearer {_make_token(sub)}"}


@pytest.fixture
def app_with_uow():
    app = create_app()
    uow = FakeUoW()

    async def _override():
        yield uow

    app.dependency_overrides[get_uow] = _override
    return app, uow


@pytest.fixture
def client(app_with_uow):
    app, _ = app_with_uow
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def uow(app_with_uow):
    _, uow = app_with_uow
    return uow


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert "sockets" in resp.json()


def test_send_message(client, uow):
    resp = client.post("/api/messages/2", headers=_auth(1), json={"content": "  hi  "})

    assert resp.status_code == 201
    data = resp.json()
    assert data["content"] == "hi"
    assert data["senderId"] == 1
    assert data["receiverId"] == 2
    assert data["read"] is False
    assert uow._committed
    assert [r["event_type"] for r in uow.outbox._records] == ["new_message"]


def test_send_message_to_self_is_rejected(client, uow):
    resp = client.post("/api/messages/1", headers=_auth(1), json={"content": "hi"})

    assert resp.status_code == 422
    assert uow.outbox._records == []


def test_send_blank_message_is_rejected(client):
    resp = client.post("/api/messages/2", headers=_auth(1), json={"content": "   "})
    assert resp.status_code == 422


def test_list_messages_between_pair(client, uow):
    uow.messages._messages.extend([
        make_message(sender_id=1, receiver_id=2, content="one", message_id=1),
        make_message(sender_id=2, receiver_id=1, content="two", message_id=2),
        make_message(sender_id=1, receiver_id=3, content="elsewhere", message_id=3),
    ])

    resp = client.get("/api/messages/2", headers=_auth(1))

    assert resp.status_code == 200
    assert [m["content"] for m in resp.json()] == ["one", "two"]


def test_mark_read(client, uow):
    uow.messages._messages.extend([
        make_message(sender_id=2, receiver_id=1, message_id=1),
        make_message(sender_id=2, receiver_id=1, message_id=2),
        make_message(sender_id=1, receiver_id=2, message_id=3),
    ])

    resp = client.post("/api/messages/2/read", headers=_auth(1))

    assert resp.status_code == 200
    assert resp.json() == {"updated": 2}
    assert [r["event_type"] for r in uow.outbox._records] == ["messages_read"]


def test_list_conversations(client, uow):
    uow.messages._messages.extend([
        make_message(sender_id=2, receiver_id=1, message_id=1),
        make_message(sender_id=1, receiver_id=3, message_id=2),
    ])

    resp = client.get("/api/conversations", headers=_auth(1))

    assert resp.status_code == 200
    by_id = {c["id"]: c for c in resp.json()}
    assert set(by_id) == {"dm:1:2", "dm:1:3"}
    assert by_id["dm:1:2"]["unreadCount"] == 1
    assert by_id["dm:1:3"]["unreadCount"] == 0


def test_list_conversations_empty(client):
    resp = client.get("/api/conversations", headers=_auth(1))
    assert resp.status_code == 200
    assert resp.json() == []


def test_unauthorized_returns_error(client):
    resp = client.post("/api/messages/2", json={"content": "hi"})
    assert resp.status_code in (401, 403)


def test_invalid_token_returns_401(client):
    resp = client.get("/api/conversations", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


def test_non_positive_user_id_is_rejected(client):
    resp = client.get("/api/messages/0", headers=_auth(1))
    assert resp.status_code == 422


def test_request_id_is_echoed(client):
    resp = client.get("/healthz", headers={"X-Request-ID": "abc123"})
    assert resp.headers["X-Request-ID"] == "abc123"
    assert resp.headers["Server-Timing"].startswith("app;dur=")


def test_request_id_is_generated_when_missing(client):
    resp = client.get("/healthz")
    assert len(resp.headers["X-Request-ID"]) == 32


def test_long_conversation_lists_newest_page_with_older_cursor(client):
    for i in range(55):
        resp = client.post("/api/messages/2", headers=_auth(1), json={"content": f"m{i}"})
        assert resp.status_code == 201

    resp = client.get("/api/messages/2", headers=_auth(1))

    contents = [m["content"] for m in resp.json()]
    assert contents == [f"m{i}" for i in range(5, 55)]
    cursor = resp.headers["X-Next-Cursor"]

    older = client.get("/api/messages/2", headers=_auth(1), params={"cursor": cursor})

    assert [m["content"] for m in older.json()] == [f"m{i}" for i in range(5)]
    assert "X-Next-Cursor" not in older.headers


def test_malformed_cursor_is_rejected(client):
    resp = client.get("/api/messages/2", headers=_auth(1), params={"cursor": "bm9waXBl"})
    assert resp.status_code == 422
