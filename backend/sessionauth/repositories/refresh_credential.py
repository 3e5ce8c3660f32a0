"""Refresh credential repository: lookups and conditional state transitions."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import cast

from sqlalchemy import select, update

from sessionauth.models.refresh_credential import RefreshCredentialRecord
from sessionauth.repositories.base import BaseRepository


class RefreshCredentialRepository(BaseRepository[RefreshCredentialRecord]):
    """Persistence-only repository for :class:`RefreshCredentialRecord`.

    State changes are issued as guarded ``UPDATE`` statements so two sessions
    racing on the same row cannot both succeed: the database decides the winner
    and the loser observes ``rowcount == 0``.
    """

    model = RefreshCredentialRecord

    def _default_order(self):
        return (RefreshCredentialRecord.created_at, RefreshCredentialRecord.id)

    def _filterable_fields(self):
        return {
            "owner_id": RefreshCredentialRecord.owner_id,
            "parent_id": RefreshCredentialRecord.parent_id,
            "used": RefreshCredentialRecord.used,
            "revoked": RefreshCredentialRecord.revoked,
        }

    # ---------------------------- Lookups ----------------------------

    def get_by_secret(self, secret: str) -> RefreshCredentialRecord | None:
        stmt = select(RefreshCredentialRecord).where(RefreshCredentialRecord.secret == secret)
        result = self.session.execute(stmt).scalars().first()
        return cast(RefreshCredentialRecord | None, result)

    def secret_exists(self, secret: str) -> bool:
        stmt = select(RefreshCredentialRecord.id).where(RefreshCredentialRecord.secret == secret)
        return bool(self.session.execute(stmt).first())

    def list_for_owner(self, owner_id: int) -> Sequence[RefreshCredentialRecord]:
        """Every credential of ``owner_id``, oldest first."""
        return self.find_all(owner_id=owner_id)

    # ---------------------------- Transitions ----------------------------

    def mark_used_if_unused(self, credential_id: str) -> bool:
        """Flip ``used`` only when the row is still unused and unrevoked.

        :param credential_id: Credential to consume.
        :type credential_id: str
        :returns: ``True`` if this call performed the transition.
        :rtype: bool
        """
        stmt = (
            update(RefreshCredentialRecord)
            .where(
                RefreshCredentialRecord.id == credential_id,
                RefreshCredentialRecord.used.is_(False),
                RefreshCredentialRecord.revoked.is_(False),
            )
            .values(used=True)
            .execution_options(synchronize_session="fetch")
        )
        result = self.session.execute(stmt)
        return bool(result.rowcount)

    def revoke_ids(self, credential_ids: Iterable[str]) -> int:
        """Revoke every still-active row among ``credential_ids``.

        :returns: Number of rows that changed from active to revoked.
        :rtype: int
        """
        ids = list(credential_ids)
        if not ids:
            return 0
        stmt = (
            update(RefreshCredentialRecord)
            .where(
                RefreshCredentialRecord.id.in_(ids),
                RefreshCredentialRecord.revoked.is_(False),
            )
            .values(revoked=True)
            .execution_options(synchronize_session="fetch")
        )
        return int(self.session.execute(stmt).rowcount or 0)

    def revoke_for_owner(self, owner_id: int) -> int:
        stmt = (
            update(RefreshCredentialRecord)
            .where(
                RefreshCredentialRecord.owner_id == owner_id,
                RefreshCredentialRecord.revoked.is_(False),
            )
            .values(revoked=True)
            .execution_options(synchronize_session="fetch")
        )
        return int(self.session.execute(stmt).rowcount or 0)
