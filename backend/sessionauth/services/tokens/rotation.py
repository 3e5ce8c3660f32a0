# sessionauth/services/tokens/rotation.py
from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import NoReturn

from sessionauth.services._shared.errors import (
    NotFoundError,
    RotationError,
    RotationFailure,
    StoreUnavailableError,
)
from sessionauth.services._shared.ports import RefreshCredential, RefreshTokenStore, UserDirectory
from sessionauth.services.tokens.dto import IssuedTokens
from sessionauth.services.tokens.family import FamilyRevocationService
from sessionauth.services.tokens.issuer import TokenIssuer

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RotationEngine:
    """
    Exchange a refresh secret for a new access/refresh pair, exactly once.

    Checks run in this order::

        not_found -> expired -> revoked -> used (reuse) -> valid

    Consuming the credential and storing its child is one store transaction
    (``consume``), so the child exists the moment the parent reads as used.
    A credential presented after it was consumed (sequentially, or by losing
    that race) is treated as stolen: its whole family is revoked before
    :class:`RotationError` ``REUSE_DETECTED`` is raised.
    """

    def __init__(
        self,
        *,
        store: RefreshTokenStore,
        issuer: TokenIssuer,
        family: FamilyRevocationService,
        users: UserDirectory,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.issuer = issuer
        self.family = family
        self.users = users
        self._now = now or _utcnow

    def rotate(self, presented_secret: str) -> IssuedTokens:
        """
        Consume ``presented_secret`` and issue its child pair.

        :param presented_secret: Refresh secret sent by the client.
        :returns: New access token and child refresh credential.
        :raises RotationError: ``NOT_FOUND``, ``EXPIRED``, ``REVOKED``,
            ``REUSE_DETECTED`` or ``UNAVAILABLE``.
        """
        try:
            return self._rotate(presented_secret)
        except StoreUnavailableError as exc:
            log.error("refresh.store_unavailable", exc_info=True)
            raise RotationError(RotationFailure.UNAVAILABLE) from exc

    # ------------------------------------------------------------------ #
    # State machine
    # ------------------------------------------------------------------ #

    def _rotate(self, presented_secret: str) -> IssuedTokens:
        record = self.store.find_by_secret(presented_secret) if presented_secret else None
        if record is None:
            self._reject(RotationFailure.NOT_FOUND)

        if record.is_expired(self._now()):
            self._reject(RotationFailure.EXPIRED, record)

        if record.revoked:
            self._reject(RotationFailure.REVOKED, record)

        if record.used:
            self._reuse_detected(record)

        role = self.users.role_of(record.owner_id)
        if role is None:
            # Owner deleted since issue: leave the credential untouched.
            self._reject(RotationFailure.NOT_FOUND, record)

        issued = self.issuer.issue(record.owner_id, parent_id=record.id, role=role)
        if issued is None:
            self._lost_race(record)

        log.info(
            "refresh.rotated",
            extra={"credential_id": record.id, "owner_id": record.owner_id},
        )
        return issued

    def _lost_race(self, record: RefreshCredential) -> NoReturn:
        """Handle a consume that changed nothing."""
        current = self.store.get(record.id)
        if current is None:
            self._reject(RotationFailure.NOT_FOUND, record)
        if current.revoked and not current.used:
            # Revoked (logout/password change) between lookup and consume.
            self._reject(RotationFailure.REVOKED, current)
        self._reuse_detected(current)

    def _reuse_detected(self, record: RefreshCredential) -> NoReturn:
        try:
            outcome = self.family.revoke(record.id)
            family_size = outcome.family_size
        except NotFoundError:
            family_size = 0
        log.error(
            "refresh.reuse_detected",
            extra={
                "credential_id": record.id,
                "owner_id": record.owner_id,
                "family_size": family_size,
            },
        )
        raise RotationError(RotationFailure.REUSE_DETECTED, credential_id=record.id)

    def _reject(
        self, kind: RotationFailure, record: RefreshCredential | None = None
    ) -> NoReturn:
        credential_id = record.id if record is not None else None
        log.info(
            "refresh.rejected",
            extra={"failure": kind.value, "credential_id": credential_id},
        )
        raise RotationError(kind, credential_id=credential_id)
