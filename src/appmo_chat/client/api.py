"""REST client for message persistence and read receipts."""
from __future__ import annotations

import logging
from datetime import datetime
from types import TracebackType
from typing import Any, Self

import httpx
from pydantic import BaseModel, ConfigDict, TypeAdapter
from pydantic.alias_generators import to_camel

from appmo_chat.infrastructure.ws.protocol import MessagePayload

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {detail}" if status_code else detail)


class ConversationSummary(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    user1_id: int
    user2_id: int
    last_message_at: datetime | None = None
    unread_count: int = 0


_messages = TypeAdapter(list[MessagePayload])
_conversations = TypeAdapter(list[ConversationSummary])


class MessagesApi:
    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def send_message(self, recipient_id: int, content: str) -> MessagePayload:
        data = await self._request("POST", f"/api/messages/{recipient_id}", json={"content": content})
        return MessagePayload.model_validate(data)

    async def mark_read(self, recipient_id: int) -> int:
        data = await self._request("POST", f"/api/messages/{recipient_id}/read")
        return int(data.get("updated", 0))

    async def list_messages(
        self,
        peer_id: int,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> list[MessagePayload]:
        params: dict[str, Any] = {"limit": limit}
        if cursor:
            params["cursor"] = cursor
        data = await self._request("GET", f"/api/messages/{peer_id}", params=params)
        return _messages.validate_python(data)

    async def list_conversations(self) -> list[ConversationSummary]:
        data = await self._request("GET", "/api/conversations")
        return _conversations.validate_python(data)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise ApiError(0, f"{method} {url} failed: {exc}") from exc

        if response.is_error:
            raise ApiError(response.status_code, _error_detail(response))
        return response.json()


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return str(body)
