from __future__ import annotations

from appmo_chat.application.dto.principal import Principal
from appmo_chat.application.exceptions import ValidationError

MAX_CONTENT_LENGTH = 4000


def assert_distinct_participants(principal: Principal, peer_id: int) -> None:
    """A direct message always has two different participants."""
    if peer_id <= 0:
        raise ValidationError("Invalid user id")
    if principal.user_id == peer_id:
        raise ValidationError("Cannot message yourself")


def clean_content(content: str) -> str:
    text = content.strip()
    if not text:
        raise ValidationError("Message content is required")
    if len(text) > MAX_CONTENT_LENGTH:
        raise ValidationError(f"Message content exceeds {MAX_CONTENT_LENGTH} characters")
    return text
