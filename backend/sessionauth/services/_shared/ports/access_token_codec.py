from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol


class TokenDecodeError(Exception):
    """Raised when an access token is malformed, tampered with or expired."""


@dataclass(frozen=True, slots=True)
class AccessClaims:
    """
    Claims carried by a verified access token.

    :ivar user_id: Authenticated user id (``sub``).
    :ivar role: Role claim.
    :ivar expires_at: Absolute expiry (UTC).
    :ivar jti: Token identifier.
    """

    user_id: int
    role: str
    expires_at: datetime
    jti: str


class AccessTokenCodec(Protocol):
    """Port for producing and verifying the short-lived signed access token."""

    def encode(self, user_id: int, role: str, ttl: timedelta) -> str: ...

    def decode(self, token: str) -> AccessClaims:
        """
        Verify ``token`` and return its claims.

        :raises TokenDecodeError: If the token cannot be trusted.
        """
        ...
