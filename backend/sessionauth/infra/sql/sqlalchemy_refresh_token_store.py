# sessionauth/infra/sql/sqlalchemy_refresh_token_store.py
from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, OperationalError

from sessionauth.models.base import as_utc
from sessionauth.models.refresh_credential import RefreshCredentialRecord
from sessionauth.repositories.refresh_credential import RefreshCredentialRepository
from sessionauth.services._shared.errors import (
    DuplicateSecretError,
    StoreUnavailableError,
    violates,
)
from sessionauth.services._shared.ports import RefreshCredential, RefreshTokenStore
from sessionauth.uow.sqlalchemy_uow import SQLAlchemyUnitOfWork

SECRET_CONSTRAINT = "uq_refresh_credentials_secret"


def to_domain(row: RefreshCredentialRecord) -> RefreshCredential:
    """Map a persisted row onto the immutable :class:`RefreshCredential`."""
    return RefreshCredential(
        id=row.id,
        owner_id=row.owner_id,
        secret=row.secret,
        expires_at=as_utc(row.expires_at),
        used=bool(row.used),
        revoked=bool(row.revoked),
        parent_id=row.parent_id,
        created_at=as_utc(row.created_at) if row.created_at is not None else None,
    )


class SQLAlchemyRefreshTokenStore(RefreshTokenStore):
    """
    Relational refresh credential store.

    Each call runs in a Unit of Work that commits on success and rolls back
    on error. :meth:`atomic` opens one Unit of Work for the current thread;
    calls made inside it join that Unit of Work instead of committing on
    their own.

    ``mark_used`` is a guarded ``UPDATE ... WHERE used = false AND revoked = false``;
    the affected row count decides the winner of concurrent rotations. ``consume``
    runs that UPDATE and the child INSERT inside one SAVEPOINT.
    """

    def __init__(self, uow_factory: Callable[[], SQLAlchemyUnitOfWork] | None = None) -> None:
        self._uow_factory = uow_factory or SQLAlchemyUnitOfWork
        self._local = threading.local()

    # -------------------- scope --------------------

    @contextmanager
    def _scope(self) -> Iterator[RefreshCredentialRepository]:
        active: SQLAlchemyUnitOfWork | None = getattr(self._local, "uow", None)
        if active is not None:
            yield active.refresh_credentials
            return

        uow = self._uow_factory()
        self._local.uow = uow
        try:
            with uow:
                yield uow.refresh_credentials
        except OperationalError as exc:
            raise StoreUnavailableError("refresh credential database unavailable") from exc
        finally:
            self._local.uow = None

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._scope():
            yield

    @staticmethod
    def _record(credential: RefreshCredential) -> RefreshCredentialRecord:
        record = RefreshCredentialRecord(
            id=credential.id,
            owner_id=credential.owner_id,
            secret=credential.secret,
            expires_at=credential.expires_at,
            used=credential.used,
            revoked=credential.revoked,
            parent_id=credential.parent_id,
        )
        if credential.created_at is not None:
            record.created_at = credential.created_at
        return record

    @contextmanager
    def _savepoint(self, repo: RefreshCredentialRepository) -> Iterator[None]:
        """SAVEPOINT keeps an enclosing scope usable after a duplicate secret."""
        try:
            with repo.session.begin_nested():
                yield
        except IntegrityError as exc:
            if violates(exc, SECRET_CONSTRAINT) or violates(exc, "refresh_credentials.secret"):
                raise DuplicateSecretError("refresh secret already exists") from exc
            raise

    # -------------------- API ------------------------

    def insert(self, credential: RefreshCredential) -> None:
        with self._scope() as repo:
            if repo.secret_exists(credential.secret):
                raise DuplicateSecretError("refresh secret already exists")
            with self._savepoint(repo):
                repo.add(self._record(credential))

    def get(self, credential_id: str) -> RefreshCredential | None:
        with self._scope() as repo:
            row = repo.get(credential_id)
            return to_domain(row) if row is not None else None

    def find_by_secret(self, secret: str) -> RefreshCredential | None:
        with self._scope() as repo:
            row = repo.get_by_secret(secret)
            return to_domain(row) if row is not None else None

    def mark_used(self, credential_id: str) -> bool:
        with self._scope() as repo:
            return repo.mark_used_if_unused(credential_id)

    def consume(self, credential_id: str, child: RefreshCredential) -> bool:
        with self._scope() as repo:
            if repo.secret_exists(child.secret):
                raise DuplicateSecretError("refresh secret already exists")
            # A failed child insert rolls the guarded UPDATE back with it.
            with self._savepoint(repo):
                if not repo.mark_used_if_unused(credential_id):
                    return False
                repo.add(self._record(child))
            return True

    def children(self, credential_id: str) -> list[RefreshCredential]:
        with self._scope() as repo:
            return [to_domain(row) for row in repo.find_all(parent_id=credential_id)]

    def revoke_many(self, credential_ids: Iterable[str]) -> int:
        with self._scope() as repo:
            return repo.revoke_ids(credential_ids)

    def revoke_for_owner(self, owner_id: int) -> int:
        with self._scope() as repo:
            return repo.revoke_for_owner(owner_id)

    def list_for_owner(self, owner_id: int) -> list[RefreshCredential]:
        with self._scope() as repo:
            return [to_domain(row) for row in repo.list_for_owner(owner_id)]
