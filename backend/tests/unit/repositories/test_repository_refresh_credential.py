# tests/unit/repositories/test_repository_refresh_credential.py
from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from sessionauth.repositories.refresh_credential import RefreshCredentialRepository
from tests.factories.refresh_credential import RefreshCredentialFactory
from tests.factories.user import UserFactory


@pytest.fixture()
def repo(session) -> RefreshCredentialRepository:
    return RefreshCredentialRepository(session=session)


def test_get_by_secret_and_secret_exists(repo, session):
    row = RefreshCredentialFactory()
    session.flush()

    assert repo.get_by_secret(row.secret).id == row.id
    assert repo.get_by_secret("missing") is None
    assert repo.secret_exists(row.secret) is True
    assert repo.secret_exists("missing") is False


def test_mark_used_if_unused_decides_one_winner(repo, session):
    row = RefreshCredentialFactory()
    session.flush()

    assert repo.mark_used_if_unused(row.id) is True
    assert repo.mark_used_if_unused(row.id) is False
    session.refresh(row)
    assert row.used is True


def test_mark_used_if_unused_skips_revoked(repo, session):
    row = RefreshCredentialFactory(revoked=True)
    session.flush()

    assert repo.mark_used_if_unused(row.id) is False
    assert repo.mark_used_if_unused("ghost") is False


def test_revoke_ids_counts_changed_rows(repo, session):
    user = UserFactory()
    rows = [RefreshCredentialFactory(owner_id=user.id) for _ in range(3)]
    rows[0].revoked = True
    session.flush()

    assert repo.revoke_ids([r.id for r in rows]) == 2
    assert repo.revoke_ids([]) == 0


def test_revoke_for_owner_is_scoped_to_owner(repo, session):
    alice, bob = UserFactory(), UserFactory()
    RefreshCredentialFactory(owner_id=alice.id)
    RefreshCredentialFactory(owner_id=alice.id)
    bobs = RefreshCredentialFactory(owner_id=bob.id)
    session.flush()

    assert repo.revoke_for_owner(alice.id) == 2
    session.refresh(bobs)
    assert bobs.revoked is False


def test_list_for_owner_orders_by_creation(repo, session):
    user = UserFactory()
    base = datetime(2026, 1, 1, tzinfo=UTC)
    newer = RefreshCredentialFactory(owner_id=user.id)
    newer.created_at = base + timedelta(minutes=5)
    older = RefreshCredentialFactory(owner_id=user.id)
    older.created_at = base
    session.flush()

    assert [r.id for r in repo.list_for_owner(user.id)] == [older.id, newer.id]


def test_find_all_filters_children(repo, session):
    parent = RefreshCredentialFactory()
    child = RefreshCredentialFactory(owner_id=parent.owner_id, parent_id=parent.id)
    session.flush()

    assert [r.id for r in repo.find_all(parent_id=parent.id)] == [child.id]
    # Keys outside the whitelist are ignored
    assert len(repo.find_all(secret="ignored", parent_id=parent.id)) == 1
