"""Fixtures shared by the unit tests: one store per backend and an owner."""

from __future__ import annotations

import fakeredis
import pytest

from sessionauth.infra.redis.redis_refresh_token_store import RedisRefreshTokenStore
from sessionauth.infra.sql.sqlalchemy_refresh_token_store import SQLAlchemyRefreshTokenStore
from sessionauth.services._shared.ports import InMemoryRefreshTokenStore
from tests.factories.user import UserFactory


@pytest.fixture(params=["memory", "sql", "redis"])
def store(request, session):
    """A fresh refresh credential store of each backend."""
    if request.param == "memory":
        return InMemoryRefreshTokenStore()
    if request.param == "sql":
        return SQLAlchemyRefreshTokenStore()
    return RedisRefreshTokenStore(r=fakeredis.FakeRedis())


@pytest.fixture()
def owner(session) -> int:
    """Id of a persisted user."""
    user = UserFactory()
    session.flush()
    return user.id
