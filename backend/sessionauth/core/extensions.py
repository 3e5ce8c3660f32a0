"""Global Flask extension instances and initialization helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import redis  # type: ignore[import-untyped]
from flask import Flask, current_app
from flask_jwt_extended import JWTManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from redis.exceptions import RedisError  # type: ignore[import-untyped]
from sqlalchemy import MetaData, event
from sqlalchemy.engine import Engine

if TYPE_CHECKING:
    from sessionauth.services._shared.ports import RefreshTokenStore

# Global naming convention for all constraints
convention = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)

# Global singletons (import-safe)
db: SQLAlchemy = SQLAlchemy(session_options={"autoflush": False}, metadata=metadata)
migrate = Migrate(render_as_batch=True)
jwt = JWTManager()
redis_client: redis.Redis | None = None

REFRESH_STORE_KEY = "refresh_token_store"


def init_app(app: Flask) -> None:
    """Initialize SQLAlchemy, migrations, JWT and the refresh credential store.

    Parameters
    ----------
    app: flask.Flask
        Application used to bind extension instances. This call imports the
        :mod:`sessionauth.models` package to ensure SQLAlchemy metadata is
        ready for migrations.
    """
    db.init_app(app)
    with app.app_context():
        if db.engine.dialect.name == "sqlite":
            _enable_sqlite_savepoints(db.engine)

    # Ensure models are imported so Alembic sees metadata
    from sessionauth import models as _models  # noqa: F401

    migrate.init_app(app, db)
    jwt.init_app(app)

    global redis_client
    redis_url = app.config.get("REDIS_URL")
    if not redis_url:
        redis_client = None
        app.extensions.pop("redis_client", None)
    else:
        redis_client = redis.Redis.from_url(redis_url)
        try:
            redis_client.ping()
        except RedisError as exc:
            raise RuntimeError(f"Failed to connect to Redis at {redis_url!r}") from exc
        app.extensions["redis_client"] = redis_client

    app.extensions[REFRESH_STORE_KEY] = _build_refresh_store(app)


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT works on pysqlite.

    pysqlite defers BEGIN until the first DML statement, which breaks nested
    transactions (used by the refresh store and the test fixtures).
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def _build_refresh_store(app: Flask) -> RefreshTokenStore:
    """Instantiate the refresh credential store selected by ``REFRESH_STORE_BACKEND``."""
    backend = str(app.config.get("REFRESH_STORE_BACKEND", "sql")).lower()

    if backend == "sql":
        from sessionauth.infra.sql.sqlalchemy_refresh_token_store import (
            SQLAlchemyRefreshTokenStore,
        )

        return SQLAlchemyRefreshTokenStore()

    if backend == "redis":
        from sessionauth.infra.redis.redis_refresh_token_store import RedisRefreshTokenStore

        return RedisRefreshTokenStore(r=get_redis())

    if backend == "memory":
        from sessionauth.services._shared.ports import InMemoryRefreshTokenStore

        return InMemoryRefreshTokenStore()

    raise RuntimeError(f"Unknown REFRESH_STORE_BACKEND {backend!r}")


def get_redis() -> redis.Redis:
    """Return the initialized Redis client."""
    if redis_client is None:
        raise RuntimeError("Redis client is not initialized. Set REDIS_URL and call init_app().")
    return redis_client


def redis_client_or_none() -> redis.Redis | None:
    """Return the Redis client bound to the current application, if any."""
    return current_app.extensions.get("redis_client")


def get_refresh_store() -> RefreshTokenStore:
    """Return the refresh credential store bound to the current application."""
    store = current_app.extensions.get(REFRESH_STORE_KEY)
    if store is None:
        raise RuntimeError("Refresh token store is not initialized. Call init_app() first.")
    return store
