from __future__ import annotations

from urllib.parse import urlencode

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class ClientSettings(BaseSettings):
    """Client-side knobs, read from ``APPMO_*`` variables."""

    BASE_URL: str = "http://localhost:5000"
    WS_PATH: str = "/ws"

    RECONNECT_BASE_DELAY: float = 1.0
    RECONNECT_MAX_DELAY: float = 16.0
    RECONNECT_MAX_ATTEMPTS: int = 5

    POLL_INTERVAL_SECONDS: float = 5.0
    HTTP_TIMEOUT_SECONDS: float = 10.0

    @property
    def ws_url(self) -> str:
        base = self.BASE_URL.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base.removeprefix("https://")
        elif base.startswith("http://"):
            base = "ws://" + base.removeprefix("http://")
        return base + self.WS_PATH

    def socket_url(self, token: str | None = None) -> str:
        """``ws_url`` carrying ``token`` so the relay can pin the registered user."""
        if not token:
            return self.ws_url
        return f"{self.ws_url}?{urlencode({'token': token})}"

    model_config = ConfigDict(
        env_prefix="APPMO_",
        env_file=".env",
        extra="ignore",
    )
