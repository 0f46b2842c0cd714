"""WebSocket frame models.

Every frame is a JSON object discriminated by its ``type`` field. Field names
travel in camelCase (``userId``, ``receiverId``) and are exposed in snake_case.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class Frame(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


# Client → Server


class RegisterEvent(Frame):
    type: Literal["register"] = "register"
    user_id: int


class DirectMessageEvent(Frame):
    type: Literal["direct_message"] = "direct_message"
    receiver_id: int
    content: str = Field(min_length=1)


class JoinRoomEvent(Frame):
    type: Literal["join_room"] = "join_room"
    room: str = Field(min_length=1)


class SendMessageEvent(Frame):
    """Room chat line; extra fields are relayed untouched."""

    model_config = ConfigDict(extra="allow")

    type: Literal["send_message"] = "send_message"
    room: str = Field(min_length=1)


class PingEvent(Frame):
    type: Literal["ping"] = "ping"


ClientEvent = Annotated[
    Union[RegisterEvent, DirectMessageEvent, JoinRoomEvent, SendMessageEvent, PingEvent],
    Field(discriminator="type"),
]


# Server → Client


class MessagePayload(Frame):
    """DirectMessage as pushed to clients. ``id`` is None for socket-only relays."""

    id: int | None = None
    sender_id: int
    receiver_id: int
    content: str
    read: bool = False
    created_at: datetime


class NewMessageEvent(Frame):
    type: Literal["new_message"] = "new_message"
    message: MessagePayload


class ReceiveMessageEvent(Frame):
    model_config = ConfigDict(extra="allow")

    type: Literal["receive_message"] = "receive_message"
    room: str
    timestamp: datetime


class MessagesReadEvent(Frame):
    type: Literal["messages_read"] = "messages_read"
    reader_id: int
    peer_id: int


class ErrorEvent(Frame):
    type: Literal["error"] = "error"
    code: str
    detail: str | None = None


class PongEvent(Frame):
    type: Literal["pong"] = "pong"


ServerEvent = Annotated[
    Union[NewMessageEvent, ReceiveMessageEvent, MessagesReadEvent, ErrorEvent, PongEvent],
    Field(discriminator="type"),
]

_client_events: TypeAdapter[ClientEvent] = TypeAdapter(ClientEvent)
_server_events: TypeAdapter[ServerEvent] = TypeAdapter(ServerEvent)


def parse_client_event(raw: str | bytes) -> ClientEvent:
    """Decode a client frame. Raises pydantic.ValidationError on bad JSON or shape."""
    return _client_events.validate_json(raw)


def parse_server_event(raw: str | bytes) -> ServerEvent:
    """Decode a server frame. Raises pydantic.ValidationError on bad JSON or shape."""
    return _server_events.validate_json(raw)
