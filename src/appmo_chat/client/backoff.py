"""Reconnect schedule for the client connection manager."""
from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from appmo_chat.client.config import ClientSettings


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """Exponential backoff: ``base_delay`` doubling per attempt, capped, bounded.

    With the defaults the waits are 1, 2, 4, 8 and 16 seconds, after which the
    manager gives up.
    """

    base_delay: float = 1.0
    factor: float = 2.0
    max_delay: float = 16.0
    max_attempts: int = 5

    def __post_init__(self) -> None:
        if self.base_delay <= 0 or self.max_delay < self.base_delay:
            raise ValueError("need 0 < base_delay <= max_delay")
        if self.factor < 1:
            raise ValueError("factor must be >= 1")
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")

    @classmethod
    def from_settings(cls, settings: ClientSettings) -> ReconnectPolicy:
        return cls(
            base_delay=settings.RECONNECT_BASE_DELAY,
            max_delay=settings.RECONNECT_MAX_DELAY,
            max_attempts=settings.RECONNECT_MAX_ATTEMPTS,
        )

    def delay(self, attempt: int) -> float:
        """Seconds to wait before reconnect ``attempt`` (1-based)."""
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        # exponent capped so huge attempt numbers cannot overflow
        return min(self.base_delay * self.factor ** min(attempt - 1, 64), self.max_delay)

    def should_retry(self, attempt: int) -> bool:
        return attempt <= self.max_attempts

    def delays(self) -> Iterator[float]:
        for attempt in range(1, self.max_attempts + 1):
            yield self.delay(attempt)
