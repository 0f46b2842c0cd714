from __future__ import annotations

USER_ROOM_PREFIX = "user:"
CONVERSATION_ROOM_PREFIX = "dm:"


def user_room(user_id: int) -> str:
    """Personal relay room every socket of a registered user belongs to."""
    return f"{USER_ROOM_PREFIX}{user_id}"


def conversation_room(user_a: int, user_b: int) -> str:
    """Order-independent key for the conversation between two users."""
    low, high = sorted((user_a, user_b))
    return f"{CONVERSATION_ROOM_PREFIX}{low}:{high}"
