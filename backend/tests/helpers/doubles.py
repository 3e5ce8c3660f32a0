"""Test doubles for the token ports: a deterministic codec and a dict-backed directory."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from sessionauth.services._shared.ports import (
    AccessClaims,
    AccessTokenCodec,
    TokenDecodeError,
    UserDirectory,
)


class StubAccessTokenCodec(AccessTokenCodec):
    """Deterministic codec: tokens read ``access.<user_id>.jti-<n>``."""

    def __init__(self) -> None:
        self._now = datetime.now(tz=UTC)
        self._seq = 0
        self._issued: dict[str, dict[str, Any]] = {}

    def encode(self, user_id: int, role: str, ttl: timedelta) -> str:
        self._seq += 1
        jti = f"jti-{self._seq}"
        token = f"access.{user_id}.{jti}"
        self._issued[token] = {
            "sub": user_id,
            "role": role,
            "jti": jti,
            "exp": self._now + ttl,
        }
        return token

    def decode(self, token: str) -> AccessClaims:
        payload = self._issued.get(token)
        if payload is None:
            raise TokenDecodeError("unknown token")
        return AccessClaims(
            user_id=int(payload["sub"]),
            role=str(payload["role"]),
            expires_at=payload["exp"],
            jti=str(payload["jti"]),
        )

    @property
    def issued_count(self) -> int:
        return self._seq


class InMemoryUserDirectory(UserDirectory):
    def __init__(self, roles: dict[int, str] | None = None) -> None:
        self._roles: dict[int, str] = dict(roles or {})

    def add(self, user_id: int, role: str = "user") -> None:
        self._roles[user_id] = role

    def remove(self, user_id: int) -> None:
        self._roles.pop(user_id, None)

    def role_of(self, user_id: int) -> str | None:
        return self._roles.get(user_id)
