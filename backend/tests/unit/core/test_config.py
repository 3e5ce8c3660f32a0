"""Unit tests for environment-driven configuration."""

from __future__ import annotations

import pytest

from sessionauth.core.config import (
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    env_bool,
    env_int,
    get_config,
    validate_config,
)
from sessionauth.services.auth.service import LockoutPolicy
from tests.helpers.utils import not_raises


def test_get_config_follows_app_env(monkeypatch) -> None:
    monkeypatch.setenv("APP_ENV", "production")
    assert get_config() is ProductionConfig

    monkeypatch.setenv("APP_ENV", " Testing ")
    assert get_config() is TestingConfig


def test_get_config_defaults_to_development(monkeypatch) -> None:
    monkeypatch.delenv("APP_ENV", raising=False)
    assert get_config() is DevelopmentConfig

    monkeypatch.setenv("APP_ENV", "staging")
    assert get_config() is DevelopmentConfig


def test_env_parsers(monkeypatch) -> None:
    monkeypatch.setenv("FLAG", "Yes")
    monkeypatch.setenv("NUMBER", " ")
    assert env_bool("FLAG") is True
    assert env_bool("MISSING_FLAG", default=True) is True
    assert env_int("NUMBER", 7) == 7

    monkeypatch.setenv("NUMBER", "42")
    assert env_int("NUMBER", 7) == 42


def test_refresh_defaults() -> None:
    assert TestingConfig.REFRESH_SECRET_BYTES >= 32
    assert TestingConfig.REFRESH_ISSUE_MAX_ATTEMPTS == 3
    assert TestingConfig.REFRESH_STORE_BACKEND == "sql"


def test_lockout_policy_from_config() -> None:
    policy = LockoutPolicy.from_config({"LOGIN_MAX_FAILED_ATTEMPTS": 3, "LOGIN_LOCKOUT_MINUTES": 1})

    assert policy.max_attempts == 3
    assert policy.lockout.total_seconds() == 60


def _settings(**overrides):
    base = {key: getattr(TestingConfig, key) for key in dir(TestingConfig) if key.isupper()}
    base.update(overrides)
    return base


def test_testing_config_is_valid() -> None:
    with not_raises(RuntimeError):
        validate_config(_settings())


@pytest.mark.parametrize(
    ("overrides", "fragment"),
    [
        ({"REFRESH_STORE_BACKEND": "mongo"}, "REFRESH_STORE_BACKEND"),
        ({"REFRESH_STORE_BACKEND": "redis", "REDIS_URL": None}, "REDIS_URL"),
        ({"REFRESH_SECRET_BYTES": 16}, "REFRESH_SECRET_BYTES"),
        ({"TESTING": False, "DEBUG": False, "SECRET_KEY": "CHANGE_ME"}, "SECRET_KEY"),
    ],
)
def test_unsafe_settings_are_refused(overrides, fragment) -> None:
    with pytest.raises(RuntimeError, match=fragment):
        validate_config(_settings(**overrides))


def test_placeholder_secrets_are_tolerated_in_debug() -> None:
    settings = _settings(TESTING=False, DEBUG=True, SECRET_KEY="CHANGE_ME", JWT_SECRET_KEY="CHANGE_ME_JWT")
    with not_raises(RuntimeError):
        validate_config(settings)
