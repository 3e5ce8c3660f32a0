"""Small helpers shared across test modules."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sessionauth.services._shared.ports import RefreshTokenStore
from sessionauth.services.tokens import (
    FamilyRevocationService,
    RotationEngine,
    TokenIssuer,
    TokenSettings,
)
from tests.helpers.doubles import InMemoryUserDirectory, StubAccessTokenCodec

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


@contextmanager
def not_raises(exception: type[BaseException]):
    """Context manager asserting that an exception is *not* raised."""
    try:
        yield
    except exception as exc:  # pragma: no cover
        raise AssertionError(f"Did raise {exception}: {exc}") from exc


class Clock:
    """Manually advanced UTC clock, passed as the ``now`` callable."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> datetime:
        self.current += timedelta(**delta)
        return self.current


@dataclass
class TokenServices:
    """The token services wired on one store, as production wires them."""

    store: RefreshTokenStore
    issuer: TokenIssuer
    family: FamilyRevocationService
    rotation: RotationEngine
    users: InMemoryUserDirectory
    codec: StubAccessTokenCodec
    clock: Clock


def build_token_services(
    store: RefreshTokenStore,
    *,
    clock: Clock | None = None,
    settings: TokenSettings | None = None,
    users: InMemoryUserDirectory | None = None,
    secret_factory=None,
) -> TokenServices:
    clock = clock or Clock()
    users = users if users is not None else InMemoryUserDirectory()
    codec = StubAccessTokenCodec()
    issuer = TokenIssuer(
        store=store,
        codec=codec,
        users=users,
        settings=settings,
        now=clock,
        secret_factory=secret_factory,
    )
    family = FamilyRevocationService(store=store)
    rotation = RotationEngine(store=store, issuer=issuer, family=family, users=users, now=clock)
    return TokenServices(
        store=store,
        issuer=issuer,
        family=family,
        rotation=rotation,
        users=users,
        codec=codec,
        clock=clock,
    )
