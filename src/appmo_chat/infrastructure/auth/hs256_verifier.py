from __future__ import annotations

import jwt

from appmo_chat.application.dto.principal import Principal


def principal_from_claims(payload: dict) -> Principal:
    """Map verified JWT claims onto a Principal. ``sub`` carries the numeric user id."""
    return Principal(
        user_id=int(payload["sub"]),
        roles=list(payload.get("roles", [])),
    )


class HS256Verifier:
    """Verify JWTs signed with a shared HS256 secret."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    async def verify(self, token: str) -> Principal:
        payload = jwt.decode(
            token,
            self._secret,
            algorithms=[self._algorithm],
            options={"require": ["sub"]},
        )
        return principal_from_claims(payload)
