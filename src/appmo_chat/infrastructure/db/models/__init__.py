"""Import all models so Alembic can discover them via Base.metadata."""
from appmo_chat.infrastructure.db.models.direct_message import DirectMessageModel
from appmo_chat.infrastructure.db.models.outbox import OutboxMessageModel

__all__ = [
    "DirectMessageModel",
    "OutboxMessageModel",
]
