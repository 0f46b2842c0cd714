from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PayloadError

from appmo_chat.api.middleware.correlation_id import CorrelationIdMiddleware
from appmo_chat.api.middleware.metrics import RequestTimingMiddleware
from appmo_chat.api.v1.routers import conversations, health, messages, ws
from appmo_chat.application.exceptions import AppError
from appmo_chat.config import settings
from appmo_chat.domain.events.message_created import DirectMessageCreated
from appmo_chat.domain.events.messages_read import MessagesRead
from appmo_chat.infrastructure.bus.redis_pubsub import RedisPubSubSubscriber
from appmo_chat.infrastructure.db.session import dispose_engine
from appmo_chat.infrastructure.ws.protocol import MessagesReadEvent, NewMessageEvent

logger = logging.getLogger(__name__)


async def on_pubsub_event(event_type: str, data: dict[str, Any]) -> None:
    """Push a persisted-message event from Redis Pub/Sub to local sockets."""
    hub = ws.get_hub()

    try:
        if event_type == DirectMessageCreated.event_type:
            pushed = NewMessageEvent.model_validate(data)
            users = {pushed.message.sender_id, pushed.message.receiver_id}
        elif event_type == MessagesRead.event_type:
            pushed = MessagesReadEvent.model_validate(data)
            users = {pushed.reader_id, pushed.peer_id}
        else:
            logger.debug("Ignoring pubsub event %s", event_type)
            return
    except PayloadError:
        logger.warning("Malformed %s event on pubsub: %r", event_type, data)
        return

    await hub.send_to_users(users, pushed)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    app.state.redis = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )
    logger.info("Redis connection pool created")

    subscriber = RedisPubSubSubscriber(
        app.state.redis,
        settings.REDIS_PUBSUB_CHANNEL,
        on_pubsub_event,
    )
    await subscriber.start()
    app.state.pubsub_subscriber = subscriber

    yield

    await subscriber.stop()
    await app.state.redis.aclose()
    await dispose_engine()
    logger.info("Redis connection pool closed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Appmo Messaging",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(conversations.router)
    app.include_router(messages.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _app_error(_req: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
