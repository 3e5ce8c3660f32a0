from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Protocol
from uuid import uuid4

from sessionauth.services._shared.errors import DuplicateSecretError

#: Upper bound on the stored secret length (mirrors the SQL column).
MAX_SECRET_LENGTH = 200


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class RefreshCredential:
    """
    Immutable snapshot of a persisted refresh credential.

    Instances are created through :meth:`create` and never mutated: the two
    legal state changes (:meth:`marked_used`, :meth:`revoked_copy`) return a
    new instance and refuse transitions that would break monotonicity.

    :ivar id: Opaque identifier, fixed at creation.
    :ivar owner_id: User the credential authenticates.
    :ivar secret: High-entropy bearer value; unique across all credentials.
    :ivar expires_at: Absolute expiry (UTC).
    :ivar used: ``True`` once consumed by a successful rotation.
    :ivar revoked: ``True`` once revoked by logout, password change or family revocation.
    :ivar parent_id: Credential rotated to produce this one; ``None`` for a family root.
    :ivar created_at: Issue time (UTC).
    """

    id: str
    owner_id: int
    secret: str = field(repr=False)
    expires_at: datetime
    used: bool = False
    revoked: bool = False
    parent_id: str | None = None
    created_at: datetime | None = None

    @classmethod
    def create(
        cls,
        *,
        owner_id: int,
        secret: str,
        expires_at: datetime,
        parent_id: str | None = None,
        credential_id: str | None = None,
        now: datetime | None = None,
    ) -> RefreshCredential:
        """
        Build a brand-new, unused and unrevoked credential.

        :raises ValueError: If the owner or secret is missing, the secret is
            too long, or ``expires_at`` is not in the future.
        """
        current = now or _utcnow()
        if owner_id is None:
            raise ValueError("owner_id is required.")
        if not secret:
            raise ValueError("secret must be a non-empty string.")
        if len(secret) > MAX_SECRET_LENGTH:
            raise ValueError(f"secret exceeds {MAX_SECRET_LENGTH} characters.")
        if expires_at <= current:
            raise ValueError("expires_at must be in the future.")
        return cls(
            id=credential_id or uuid4().hex,
            owner_id=owner_id,
            secret=secret,
            expires_at=expires_at,
            parent_id=parent_id,
            created_at=current,
        )

    # ------------------------- state -------------------------

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_usable(self, now: datetime) -> bool:
        """A credential can be rotated iff it is unused, unrevoked and unexpired."""
        return not self.used and not self.revoked and not self.is_expired(now)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def marked_used(self) -> RefreshCredential:
        """
        Return the consumed version of this credential.

        :raises ValueError: If it is already used or has been revoked.
        """
        if self.used:
            raise ValueError("Refresh credential is already marked as used.")
        if self.revoked:
            raise ValueError("Cannot mark a revoked refresh credential as used.")
        return replace(self, used=True)

    def revoked_copy(self) -> RefreshCredential:
        """Return the revoked version of this credential (idempotent)."""
        if self.revoked:
            return self
        return replace(self, revoked=True)


class RefreshTokenStore(Protocol):
    """
    Persistence port for refresh credentials.

    Every single-record write is atomic on its own. :meth:`atomic` groups
    several calls into one all-or-nothing scope where the backend supports it;
    scopes nest (inner scopes join the outermost one).

    Adapters raise :class:`~sessionauth.services._shared.errors.StoreUnavailableError`
    when the backing database or cache cannot be reached.
    """

    def insert(self, credential: RefreshCredential) -> None:
        """
        Persist a new credential.

        :raises DuplicateSecretError: If another credential already holds ``secret``.
        """

    def get(self, credential_id: str) -> RefreshCredential | None:
        """Fetch a credential by id."""

    def find_by_secret(self, secret: str) -> RefreshCredential | None:
        """Fetch a credential by its bearer secret."""

    def mark_used(self, credential_id: str) -> bool:
        """
        Conditionally consume a credential.

        The transition happens only if the credential exists, is unused and is
        not revoked. Concurrent callers on the same id: at most one gets ``True``.

        :returns: ``True`` if this call performed the transition.
        """

    def consume(self, credential_id: str, child: RefreshCredential) -> bool:
        """
        Mark ``credential_id`` used and persist ``child`` in one atomic step.

        Either both writes land or neither does: a rotation never leaves a
        consumed parent without its child, nor a child whose parent is still
        usable. The parent must exist, be unused and not be revoked.

        :returns: ``True`` if this call consumed the parent and stored ``child``;
            ``False`` if the parent was not consumable (nothing written).
        :raises DuplicateSecretError: If ``child.secret`` is taken; the parent
            is left unconsumed.
        """

    def children(self, credential_id: str) -> list[RefreshCredential]:
        """Return the credentials whose ``parent_id`` is ``credential_id``."""

    def revoke_many(self, credential_ids: Iterable[str]) -> int:
        """
        Revoke every listed credential in one atomic step.

        :returns: Number of credentials that changed from active to revoked.
        """

    def revoke_for_owner(self, owner_id: int) -> int:
        """Revoke every credential of ``owner_id``. :returns: Number changed."""

    def list_for_owner(self, owner_id: int) -> list[RefreshCredential]:
        """List every credential (any state) of ``owner_id``, oldest first."""

    def atomic(self) -> AbstractContextManager[None]:
        """Open an all-or-nothing scope for several store calls."""


class InMemoryRefreshTokenStore(RefreshTokenStore):
    """
    In-memory refresh credential store.

    .. note::
       A re-entrant lock serializes writers; :meth:`atomic` holds it for the
       whole scope and restores a snapshot if the scope raises.
    """

    def __init__(self) -> None:
        self._by_id: dict[str, RefreshCredential] = {}
        self._by_secret: dict[str, str] = {}
        self._by_owner: dict[int, list[str]] = {}
        self._children: dict[str, list[str]] = {}
        self._lock = threading.RLock()
        self._depth = 0

    # ------------------------- helpers -------------------------

    def _snapshot(self) -> tuple[dict, dict, dict, dict]:
        return (
            dict(self._by_id),
            dict(self._by_secret),
            {k: list(v) for k, v in self._by_owner.items()},
            {k: list(v) for k, v in self._children.items()},
        )

    def _restore(self, snapshot: tuple[dict, dict, dict, dict]) -> None:
        self._by_id, self._by_secret, self._by_owner, self._children = snapshot

    # -------------------------- API ----------------------------

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._lock:
            snapshot = self._snapshot() if self._depth == 0 else None
            self._depth += 1
            try:
                yield
            except Exception:
                if snapshot is not None:
                    self._restore(snapshot)
                raise
            finally:
                self._depth -= 1

    def _check_new(self, credential: RefreshCredential) -> None:
        if credential.secret in self._by_secret:
            raise DuplicateSecretError("refresh secret already exists")
        if credential.id in self._by_id:
            raise ValueError(f"Duplicate refresh credential id: {credential.id}")

    def _consumable(self, credential_id: str) -> RefreshCredential | None:
        current = self._by_id.get(credential_id)
        if current is None or current.used or current.revoked:
            return None
        return current

    def insert(self, credential: RefreshCredential) -> None:
        with self._lock:
            self._check_new(credential)
            self._by_id[credential.id] = credential
            self._by_secret[credential.secret] = credential.id
            self._by_owner.setdefault(credential.owner_id, []).append(credential.id)
            if credential.parent_id is not None:
                self._children.setdefault(credential.parent_id, []).append(credential.id)

    def get(self, credential_id: str) -> RefreshCredential | None:
        with self._lock:
            return self._by_id.get(credential_id)

    def find_by_secret(self, secret: str) -> RefreshCredential | None:
        with self._lock:
            credential_id = self._by_secret.get(secret)
            return self._by_id.get(credential_id) if credential_id else None

    def mark_used(self, credential_id: str) -> bool:
        with self._lock:
            current = self._consumable(credential_id)
            if current is None:
                return False
            self._by_id[credential_id] = current.marked_used()
            return True

    def consume(self, credential_id: str, child: RefreshCredential) -> bool:
        with self._lock:
            current = self._consumable(credential_id)
            if current is None:
                return False
            self._check_new(child)
            self._by_id[credential_id] = current.marked_used()
            self.insert(child)
            return True

    def children(self, credential_id: str) -> list[RefreshCredential]:
        with self._lock:
            return [self._by_id[c] for c in self._children.get(credential_id, [])]

    def revoke_many(self, credential_ids: Iterable[str]) -> int:
        with self._lock:
            changed = 0
            for credential_id in set(credential_ids):
                current = self._by_id.get(credential_id)
                if current is None or current.revoked:
                    continue
                self._by_id[credential_id] = current.revoked_copy()
                changed += 1
            return changed

    def revoke_for_owner(self, owner_id: int) -> int:
        with self._lock:
            return self.revoke_many(self._by_owner.get(owner_id, []))

    def list_for_owner(self, owner_id: int) -> list[RefreshCredential]:
        with self._lock:
            return [self._by_id[c] for c in self._by_owner.get(owner_id, [])]
