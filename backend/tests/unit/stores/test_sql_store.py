# tests/unit/stores/test_sql_store.py
from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from sessionauth.infra.sql.sqlalchemy_refresh_token_store import (
    SQLAlchemyRefreshTokenStore,
    to_domain,
)
from sessionauth.models.refresh_credential import RefreshCredentialRecord
from sessionauth.repositories.refresh_credential import RefreshCredentialRepository
from sessionauth.services._shared.errors import DuplicateSecretError, StoreUnavailableError
from sessionauth.services._shared.ports import RefreshCredential
from tests.factories.refresh_credential import RefreshCredentialFactory
from tests.helpers.utils import T0


@pytest.fixture()
def sql_store() -> SQLAlchemyRefreshTokenStore:
    return SQLAlchemyRefreshTokenStore()


def _credential(owner_id: int, secret: str) -> RefreshCredential:
    return RefreshCredential.create(
        owner_id=owner_id, secret=secret, expires_at=T0 + timedelta(days=7), now=T0
    )


def test_to_domain_labels_datetimes_utc(session, owner):
    row = RefreshCredentialFactory(owner_id=owner, expires_at=(T0 + timedelta(days=1)).replace(tzinfo=None))
    session.flush()

    credential = to_domain(row)

    assert credential.expires_at == T0 + timedelta(days=1)
    assert credential.expires_at.tzinfo is not None
    assert credential.owner_id == owner


def test_reads_rows_written_elsewhere(sql_store, session, owner):
    row = RefreshCredentialFactory(owner_id=owner, used=True)
    session.flush()

    credential = sql_store.find_by_secret(row.secret)

    assert credential.id == row.id
    assert credential.used is True


def test_atomic_rolls_back_every_call_on_error(sql_store, owner):
    kept = _credential(owner, "kept")
    sql_store.insert(kept)
    dropped = _credential(owner, "dropped")

    with pytest.raises(RuntimeError):
        with sql_store.atomic():
            sql_store.mark_used(kept.id)
            sql_store.insert(dropped)
            raise RuntimeError("boom")

    assert sql_store.get(kept.id).used is False
    assert sql_store.get(dropped.id) is None


def test_unique_violation_maps_to_duplicate_and_keeps_scope_usable(
    sql_store, owner, monkeypatch
):
    sql_store.insert(_credential(owner, "dup"))
    # Simulate a racing insert that slipped past the existence check.
    monkeypatch.setattr(RefreshCredentialRepository, "secret_exists", lambda self, secret: False)
    fresh = _credential(owner, "fresh")

    with sql_store.atomic():
        with pytest.raises(DuplicateSecretError):
            sql_store.insert(_credential(owner, "dup"))
        sql_store.insert(fresh)

    assert sql_store.get(fresh.id) is not None


def test_operational_error_becomes_store_unavailable(sql_store, monkeypatch):
    def _down(self, secret):
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    monkeypatch.setattr(RefreshCredentialRepository, "get_by_secret", _down)

    with pytest.raises(StoreUnavailableError):
        sql_store.find_by_secret("whatever")


def test_rows_carry_named_unique_constraint(db):
    constraint_names = {c.name for c in RefreshCredentialRecord.__table__.constraints}
    assert "uq_refresh_credentials_secret" in constraint_names
    index_names = {i.name for i in RefreshCredentialRecord.__table__.indexes}
    assert {
        "ix_refresh_credentials_owner_id",
        "ix_refresh_credentials_parent_id",
        "ix_refresh_credentials_expires_at",
    } <= index_names


def test_consume_unique_violation_rolls_back_parent_flip(sql_store, owner, monkeypatch):
    sql_store.insert(_credential(owner, "dup"))
    parent = _credential(owner, "parent")
    sql_store.insert(parent)
    # The child insert hits the unique index after the guarded UPDATE ran.
    monkeypatch.setattr(RefreshCredentialRepository, "secret_exists", lambda self, secret: False)
    child = RefreshCredential.create(
        owner_id=owner,
        secret="dup",
        expires_at=T0 + timedelta(days=7),
        parent_id=parent.id,
        now=T0,
    )

    with pytest.raises(DuplicateSecretError):
        sql_store.consume(parent.id, child)

    assert sql_store.get(parent.id).used is False
    assert sql_store.children(parent.id) == []
