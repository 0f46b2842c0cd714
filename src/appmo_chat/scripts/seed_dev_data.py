"""Seed development data: a short conversation between users 1 and 2."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from appmo_chat.config import settings
from appmo_chat.infrastructure.db.base import Base
from appmo_chat.infrastructure.db.models import DirectMessageModel  # noqa: F401  (registers tables)
from appmo_chat.infrastructure.db.session import AsyncSessionLocal, dispose_engine, engine
from appmo_chat.infrastructure.db.uow import SqlAlchemyUoW

logger = logging.getLogger(__name__)

CONVERSATION = [
    (1, 2, "Hey, did you get a chance to look at the grocery task?"),
    (2, 1, "Yes! I can pick it up tomorrow morning."),
    (1, 2, "Great, thanks. I'll mark it as delegated."),
]


async def seed() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        uow = SqlAlchemyUoW(session)
        start = datetime.now(timezone.utc) - timedelta(minutes=len(CONVERSATION))
        for offset, (sender_id, receiver_id, content) in enumerate(CONVERSATION):
            await uow.messages_w.create(
                sender_id, receiver_id, content, start + timedelta(minutes=offset),
            )
        await uow.messages_w.mark_read_from(1, 2)
        await uow.commit()

    logger.info("Seeded %d messages into %s", len(CONVERSATION), settings.POSTGRES_DB)
    await dispose_engine()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
