# comments in English; reST docstrings
from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import redis  # type: ignore[import-untyped]

from sessionauth.services._shared.errors import DuplicateSecretError, StoreUnavailableError
from sessionauth.services._shared.ports import RefreshCredential, RefreshTokenStore


def _s(value: Any, default: str = "") -> str:
    """Decode a Redis reply that may be bytes (client without ``decode_responses``)."""
    if value is None:
        return default
    if isinstance(value, bytes | bytearray):
        return value.decode()
    return str(value)


@dataclass(slots=True)
class RedisRefreshTokenStore(RefreshTokenStore):
    """
    Redis-backed refresh credential store.

    Layout::

        rc:{id}          hash   owner_id, secret, expires_at, used, revoked, parent_id, created_at
        rc:s:{secret}    string credential id
        rc:u:{owner_id}  set    credential ids of the owner
        rc:c:{id}        set    ids of the credentials rotated from ``id``

    Every write uses WATCH/MULTI/EXEC (optimistic locking), so each call is
    atomic on its own. Redis has no multi-call rollback: :meth:`atomic` only
    maps connection errors, so a rotation goes through :meth:`consume`, which
    commits the parent flip and the child in a single transaction.

    :param r: A Redis client (already connected).
    """

    r: redis.Redis

    # -------------------- helpers --------------------

    @staticmethod
    def _k(credential_id: str) -> str:
        return f"rc:{credential_id}"

    @staticmethod
    def _ks(secret: str) -> str:
        return f"rc:s:{secret}"

    @staticmethod
    def _ku(owner_id: int) -> str:
        return f"rc:u:{owner_id}"

    @staticmethod
    def _kc(credential_id: str) -> str:
        return f"rc:c:{credential_id}"

    @staticmethod
    def _from_hash(credential_id: str, h: dict[Any, Any]) -> RefreshCredential:
        fields = {_s(k): _s(v) for k, v in h.items()}
        created_at = fields.get("created_at")
        return RefreshCredential(
            id=credential_id,
            owner_id=int(fields["owner_id"]),
            secret=fields["secret"],
            expires_at=datetime.fromisoformat(fields["expires_at"]),
            used=fields.get("used", "0") == "1",
            revoked=fields.get("revoked", "0") == "1",
            parent_id=fields.get("parent_id") or None,
            created_at=datetime.fromisoformat(created_at) if created_at else None,
        )

    @staticmethod
    def _sorted(credentials: Iterable[RefreshCredential]) -> list[RefreshCredential]:
        return sorted(credentials, key=lambda c: (c.created_at or c.expires_at, c.id))

    @contextmanager
    def _guard(self) -> Iterator[None]:
        try:
            yield
        except (redis.ConnectionError, redis.TimeoutError) as exc:
            raise StoreUnavailableError("refresh credential cache unavailable") from exc

    def _members(self, key: str) -> list[str]:
        return sorted(_s(m) for m in self.r.smembers(key))

    def _stage(self, p: Any, credential: RefreshCredential) -> None:
        """Queue every key write of a new credential on pipeline ``p`` (after MULTI)."""
        mapping = {
            "owner_id": str(credential.owner_id),
            "secret": credential.secret,
            "expires_at": credential.expires_at.isoformat(),
            "used": "1" if credential.used else "0",
            "revoked": "1" if credential.revoked else "0",
            "parent_id": credential.parent_id or "",
            "created_at": credential.created_at.isoformat() if credential.created_at else "",
        }
        p.hset(self._k(credential.id), mapping=mapping)
        p.set(self._ks(credential.secret), credential.id)
        p.sadd(self._ku(credential.owner_id), credential.id)
        if credential.parent_id:
            p.sadd(self._kc(credential.parent_id), credential.id)

    # -------------------- API ------------------------

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._guard():
            yield

    def insert(self, credential: RefreshCredential) -> None:
        """
        Persist a new credential, refusing a secret that already exists.

        The secret index key is watched so two inserts racing on the same
        secret cannot both commit.
        """
        key_secret = self._ks(credential.secret)

        with self._guard():
            # Retry loop for optimistic locking in case of concurrent modifications
            while True:
                try:
                    with self.r.pipeline() as p:
                        p.watch(key_secret)
                        if p.exists(key_secret):
                            p.unwatch()
                            raise DuplicateSecretError("refresh secret already exists")

                        p.multi()
                        self._stage(p, credential)
                        p.execute()
                    return
                except redis.WatchError:
                    continue

    def consume(self, credential_id: str, child: RefreshCredential) -> bool:
        """
        Flip the parent to used and write ``child`` in one MULTI/EXEC.

        The parent hash and the child's secret index key are watched; any
        concurrent write to either aborts EXEC and the checks run again, so a
        competing rotation never observes a used parent without its child.
        """
        key = self._k(credential_id)
        key_secret = self._ks(child.secret)

        with self._guard():
            while True:
                try:
                    with self.r.pipeline() as p:
                        p.watch(key, key_secret)
                        used, revoked = p.hmget(key, "used", "revoked")
                        if used is None or _s(used) == "1" or _s(revoked) == "1":
                            p.unwatch()
                            return False
                        if p.exists(key_secret):
                            p.unwatch()
                            raise DuplicateSecretError("refresh secret already exists")

                        p.multi()
                        p.hset(key, "used", "1")
                        self._stage(p, child)
                        p.execute()
                    return True
                except redis.WatchError:
                    continue

    def get(self, credential_id: str) -> RefreshCredential | None:
        with self._guard():
            h = self.r.hgetall(self._k(credential_id))
        if not h:
            return None
        return self._from_hash(credential_id, h)

    def find_by_secret(self, secret: str) -> RefreshCredential | None:
        with self._guard():
            credential_id = self.r.get(self._ks(secret))
        if credential_id is None:
            return None
        return self.get(_s(credential_id))

    def mark_used(self, credential_id: str) -> bool:
        key = self._k(credential_id)
        with self._guard():
            while True:
                try:
                    with self.r.pipeline() as p:
                        p.watch(key)
                        used, revoked = p.hmget(key, "used", "revoked")
                        if used is None or _s(used) == "1" or _s(revoked) == "1":
                            p.unwatch()
                            return False
                        p.multi()
                        p.hset(key, "used", "1")
                        p.execute()
                    return True
                except redis.WatchError:
                    # Another writer touched the hash; re-read and decide again.
                    continue

    def children(self, credential_id: str) -> list[RefreshCredential]:
        with self._guard():
            ids = self._members(self._kc(credential_id))
        return self._sorted(c for c in (self.get(i) for i in ids) if c is not None)

    def revoke_many(self, credential_ids: Iterable[str]) -> int:
        keys = [self._k(i) for i in sorted(set(credential_ids))]
        if not keys:
            return 0

        with self._guard():
            while True:
                try:
                    with self.r.pipeline() as p:
                        p.watch(*keys)
                        pending = [
                            k
                            for k in keys
                            if (flag := p.hget(k, "revoked")) is not None and _s(flag) != "1"
                        ]
                        if not pending:
                            p.unwatch()
                            return 0
                        p.multi()
                        for k in pending:
                            p.hset(k, "revoked", "1")
                        p.execute()
                    return len(pending)
                except redis.WatchError:
                    continue

    def revoke_for_owner(self, owner_id: int) -> int:
        with self._guard():
            ids = self._members(self._ku(owner_id))
        return self.revoke_many(ids)

    def list_for_owner(self, owner_id: int) -> list[RefreshCredential]:
        with self._guard():
            ids = self._members(self._ku(owner_id))
        return self._sorted(c for c in (self.get(i) for i in ids) if c is not None)
