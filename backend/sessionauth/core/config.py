"""Environment-driven settings, one class per deployment stage."""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any, Final

from dotenv import load_dotenv

ENV_VAR: Final[str] = "APP_ENV"  # 'development' | 'testing' | 'production'

# 32 bytes = 256 bits of entropy per refresh secret.
MIN_REFRESH_SECRET_BYTES: Final[int] = 32

STORE_BACKENDS: Final[frozenset[str]] = frozenset({"sql", "redis", "memory"})

_PLACEHOLDER_SECRETS: Final[frozenset[str]] = frozenset({"CHANGE_ME", "CHANGE_ME_JWT"})
_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "yes", "y", "on"})

load_dotenv()


def env_bool(name: str, default: bool = False) -> bool:
    """Read a boolean flag; ``1/true/yes/y/on`` (any case) count as true."""
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def env_int(name: str, default: int) -> int:
    """Read an integer; unset or blank values yield ``default``."""
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


class BaseConfig:
    """Settings shared by every environment.

    Attributes
    ----------
    SECRET_KEY, JWT_SECRET_KEY: str
        Flask and access-token signing keys. Must be overridden outside
        development and tests.
    ACCESS_TOKEN_TTL_MINUTES: int
        Lifetime of the signed access token.
    REFRESH_TOKEN_TTL_DAYS: int
        Absolute lifetime of a refresh credential.
    REFRESH_SECRET_BYTES: int
        Random bytes drawn for each refresh secret (never below 32).
    REFRESH_ISSUE_MAX_ATTEMPTS: int
        Insert attempts before a secret collision is escalated.
    REFRESH_STORE_BACKEND: str
        One of :data:`STORE_BACKENDS`; ``"sql"`` by default.
    LOGIN_MAX_FAILED_ATTEMPTS, LOGIN_LOCKOUT_MINUTES: int
        Consecutive failures that lock an account, and for how long.
    SQLALCHEMY_DATABASE_URI: str
        Read from ``DATABASE_URL``.
    REDIS_URL: str | None
        Required only by the ``redis`` store backend.
    LOG_LEVEL: str
        Root logging verbosity (``INFO`` by default).
    LOG_FORMAT: str
        ``"json"`` (default) or ``"text"`` for local consoles.
    CORS_ORIGINS: str
        Comma-separated list of allowed origins.
    USE_PROXYFIX: bool
        Trust one hop of ``X-Forwarded-*`` headers (behind a reverse proxy).
    """

    API_BASE_PREFIX = "/api"

    SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME")
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "CHANGE_ME_JWT")

    ACCESS_TOKEN_TTL_MINUTES = env_int("ACCESS_TOKEN_TTL_MINUTES", 15)
    REFRESH_TOKEN_TTL_DAYS = env_int("REFRESH_TOKEN_TTL_DAYS", 7)
    REFRESH_SECRET_BYTES = env_int("REFRESH_SECRET_BYTES", MIN_REFRESH_SECRET_BYTES)
    REFRESH_ISSUE_MAX_ATTEMPTS = env_int("REFRESH_ISSUE_MAX_ATTEMPTS", 3)
    REFRESH_STORE_BACKEND = os.getenv("REFRESH_STORE_BACKEND", "sql").strip().lower()

    LOGIN_MAX_FAILED_ATTEMPTS = env_int("LOGIN_MAX_FAILED_ATTEMPTS", 5)
    LOGIN_LOCKOUT_MINUTES = env_int("LOGIN_LOCKOUT_MINUTES", 15)

    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///./dev.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)
    REDIS_URL = os.getenv("REDIS_URL") or None

    APP_VERSION = os.getenv("APP_VERSION", "dev")
    USE_PROXYFIX = env_bool("USE_PROXYFIX", False)
    PROPAGATE_EXCEPTIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173")
    CORS_MAX_AGE = 600

    DEBUG = False
    TESTING = False


class DevelopmentConfig(BaseConfig):
    DEBUG = env_bool("FLASK_DEBUG", True)
    LOG_FORMAT = os.getenv("LOG_FORMAT", "text").strip().lower()


class TestingConfig(BaseConfig):
    """In-memory SQLite unless ``TEST_DATABASE_URL`` is set.

    The SQL refresh store stays selected so HTTP tests exercise the real
    adapter.
    """

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ECHO = False
    REFRESH_STORE_BACKEND = "sql"
    REDIS_URL = None
    JWT_SECRET_KEY = "testing-jwt-secret-with-enough-length-for-hs256"
    PROPAGATE_EXCEPTIONS = True


class ProductionConfig(BaseConfig):
    SQLALCHEMY_ECHO = False


CONFIG_MAP: Mapping[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config() -> type[BaseConfig]:
    """Return the class named by ``APP_ENV``, falling back to development."""
    name = os.getenv(ENV_VAR, "development").strip().lower()
    return CONFIG_MAP.get(name, DevelopmentConfig)


def validate_config(config: Mapping[str, Any]) -> None:
    """
    Refuse to start with settings that would weaken refresh credentials.

    :param config: A loaded ``app.config`` (or any mapping with the same keys).
    :raises RuntimeError: Listing every problem found.
    """
    problems: list[str] = []

    backend = str(config.get("REFRESH_STORE_BACKEND", "sql")).lower()
    if backend not in STORE_BACKENDS:
        problems.append(f"REFRESH_STORE_BACKEND must be one of {sorted(STORE_BACKENDS)}")
    if backend == "redis" and not config.get("REDIS_URL"):
        problems.append("REDIS_URL is required by the redis refresh store")
    if int(config.get("REFRESH_SECRET_BYTES", MIN_REFRESH_SECRET_BYTES)) < MIN_REFRESH_SECRET_BYTES:
        problems.append(f"REFRESH_SECRET_BYTES must be at least {MIN_REFRESH_SECRET_BYTES}")

    if not (config.get("DEBUG") or config.get("TESTING")):
        for key in ("SECRET_KEY", "JWT_SECRET_KEY"):
            if config.get(key) in _PLACEHOLDER_SECRETS:
                problems.append(f"{key} must be set")

    if problems:
        raise RuntimeError("Invalid configuration: " + "; ".join(problems))
