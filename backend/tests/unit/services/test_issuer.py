# tests/unit/services/test_issuer.py
from __future__ import annotations

import logging
from datetime import timedelta

import pytest

from sessionauth.services._shared.errors import NotFoundError, SecretGenerationError
from sessionauth.services._shared.ports import InMemoryRefreshTokenStore
from sessionauth.services.tokens import TokenSettings
from tests.helpers.utils import build_token_services


def test_issue_persists_fresh_root(tokens, owner):
    issued = tokens.issuer.issue(owner)

    credential = issued.refresh_credential
    stored = tokens.store.get(credential.id)
    assert stored is not None
    assert stored.secret == credential.secret
    assert stored.parent_id is None
    assert stored.used is False and stored.revoked is False
    assert stored.expires_at == tokens.clock() + timedelta(days=7)
    assert issued.refresh_token == credential.secret
    assert issued.expires_in == 15 * 60


def test_issue_secret_has_at_least_256_bits(tokens, owner):
    secret = tokens.issuer.issue(owner).refresh_token
    # token_urlsafe(32) -> 43 base64url characters
    assert len(secret) >= 43


def test_secrets_are_unique_across_issues(tokens, owner):
    secrets_seen = {tokens.issuer.issue(owner).refresh_token for _ in range(20)}
    assert len(secrets_seen) == 20


def test_issue_uses_role_from_directory(store, owner):
    tokens = build_token_services(store)
    tokens.users.add(owner, "admin")

    issued = tokens.issuer.issue(owner)

    assert tokens.codec.decode(issued.access_token).role == "admin"


def test_issue_for_unknown_user_is_not_found(store):
    tokens = build_token_services(store)

    with pytest.raises(NotFoundError):
        tokens.issuer.issue(424242)


def test_collision_is_retried_with_new_secret(store, owner, caplog):
    taken = build_token_services(store)
    taken.users.add(owner)
    existing = taken.issuer.issue(owner).refresh_credential

    candidates = iter([existing.secret, "fresh-secret-value"])
    tokens = build_token_services(store, secret_factory=lambda _n: next(candidates))
    tokens.users.add(owner)

    with caplog.at_level(logging.WARNING, logger="sessionauth.services.tokens"):
        issued = tokens.issuer.issue(owner)

    assert issued.refresh_token == "fresh-secret-value"
    assert [r.getMessage() for r in caplog.records].count("refresh.secret_collision") == 1


def test_repeated_collisions_escalate(caplog):
    store = InMemoryRefreshTokenStore()
    tokens = build_token_services(store, secret_factory=lambda _n: "always-the-same")
    tokens.users.add(1)
    tokens.issuer.issue(1)

    with caplog.at_level(logging.WARNING, logger="sessionauth.services.tokens"):
        with pytest.raises(SecretGenerationError):
            tokens.issuer.issue(1)

    critical = [r for r in caplog.records if r.levelno == logging.CRITICAL]
    assert len(critical) == 1
    assert critical[0].getMessage() == "refresh.secret_generation_failed"
    assert len(store.list_for_owner(1)) == 1


def test_settings_reject_weak_secrets():
    with pytest.raises(ValueError):
        TokenSettings(secret_bytes=16)


def test_settings_from_config():
    settings = TokenSettings.from_config(
        {"ACCESS_TOKEN_TTL_MINUTES": 5, "REFRESH_TOKEN_TTL_DAYS": 1, "REFRESH_SECRET_BYTES": 48}
    )

    assert settings.access_ttl == timedelta(minutes=5)
    assert settings.refresh_ttl == timedelta(days=1)
    assert settings.secret_bytes == 48
    assert settings.max_issue_attempts == 3
    assert settings.expires_in == 300


def test_issue_with_parent_consumes_it(tokens, owner):
    root = tokens.issuer.issue(owner).refresh_credential

    issued = tokens.issuer.issue(owner, parent_id=root.id)

    assert issued.refresh_credential.parent_id == root.id
    assert tokens.store.get(root.id).used is True


def test_issue_for_consumed_parent_writes_nothing(tokens, owner):
    root = tokens.issuer.issue(owner).refresh_credential
    tokens.store.mark_used(root.id)

    assert tokens.issuer.issue(owner, parent_id=root.id) is None
    assert tokens.store.children(root.id) == []
    assert len(tokens.store.list_for_owner(owner)) == 1
