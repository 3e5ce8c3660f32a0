# sessionauth/services/tokens/dto.py
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from sessionauth.core.config import MIN_REFRESH_SECRET_BYTES
from sessionauth.services._shared.ports import RefreshCredential


@dataclass(frozen=True, slots=True)
class TokenSettings:
    """
    Token emission configuration.

    :param access_ttl: Access token lifetime.
    :type access_ttl: timedelta
    :param refresh_ttl: Refresh credential lifetime.
    :type refresh_ttl: timedelta
    :param secret_bytes: Random bytes per refresh secret.
    :type secret_bytes: int
    :param max_issue_attempts: Insert attempts before a collision is escalated.
    :type max_issue_attempts: int
    """

    access_ttl: timedelta = timedelta(minutes=15)
    refresh_ttl: timedelta = timedelta(days=7)
    secret_bytes: int = MIN_REFRESH_SECRET_BYTES
    max_issue_attempts: int = 3

    def __post_init__(self) -> None:
        if self.secret_bytes < MIN_REFRESH_SECRET_BYTES:
            raise ValueError(
                f"secret_bytes must be at least {MIN_REFRESH_SECRET_BYTES} (256 bits)."
            )
        if self.max_issue_attempts < 1:
            raise ValueError("max_issue_attempts must be >= 1.")
        if self.access_ttl <= timedelta(0) or self.refresh_ttl <= timedelta(0):
            raise ValueError("Token lifetimes must be positive.")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> TokenSettings:
        """Build settings from a Flask ``app.config`` mapping."""
        return cls(
            access_ttl=timedelta(minutes=int(config.get("ACCESS_TOKEN_TTL_MINUTES", 15))),
            refresh_ttl=timedelta(days=int(config.get("REFRESH_TOKEN_TTL_DAYS", 7))),
            secret_bytes=int(config.get("REFRESH_SECRET_BYTES", MIN_REFRESH_SECRET_BYTES)),
            max_issue_attempts=int(config.get("REFRESH_ISSUE_MAX_ATTEMPTS", 3)),
        )

    @property
    def expires_in(self) -> int:
        """Access token lifetime in whole seconds."""
        return int(self.access_ttl.total_seconds())


@dataclass(frozen=True, slots=True)
class IssuedTokens:
    """
    A freshly issued access/refresh pair.

    :param access_token: Signed access token.
    :type access_token: str
    :param refresh_credential: Persisted refresh credential (its ``secret`` is the bearer value).
    :type refresh_credential: RefreshCredential
    :param expires_in: Access token lifetime in seconds.
    :type expires_in: int
    """

    access_token: str
    refresh_credential: RefreshCredential
    expires_in: int

    @property
    def refresh_token(self) -> str:
        return self.refresh_credential.secret
