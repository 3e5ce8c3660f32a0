# sessionauth/services/tokens/family.py
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

from sessionauth.services._shared.errors import NotFoundError
from sessionauth.services._shared.ports import RefreshCredential, RefreshTokenStore

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FamilyRevocation:
    """
    Outcome of a family revocation.

    :param root_id: Root the walk started from.
    :param member_ids: Every credential of the family, root first.
    :param revoked_count: Credentials newly revoked by this call.
    """

    root_id: str
    member_ids: tuple[str, ...]
    revoked_count: int

    @property
    def family_size(self) -> int:
        return len(self.member_ids)


class FamilyRevocationService:
    """
    Revoke every credential that shares a login-time root with a given member.

    Families are trees: each credential has one parent fixed at creation, and
    a root has children beyond a simple chain only after a reuse.
    """

    def __init__(self, *, store: RefreshTokenStore) -> None:
        self.store = store

    # ------------------------------------------------------------------ #
    # Traversal
    # ------------------------------------------------------------------ #

    def find_root(self, credential_id: str) -> RefreshCredential:
        """
        Follow ``parent_id`` back to the family root.

        Stops at the furthest ancestor still present in the store.

        :raises NotFoundError: If ``credential_id`` is unknown.
        """
        current = self.store.get(credential_id)
        if current is None:
            raise NotFoundError("RefreshCredential", credential_id)
        seen = {current.id}
        while current.parent_id is not None:
            parent = self.store.get(current.parent_id)
            if parent is None or parent.id in seen:
                break
            seen.add(parent.id)
            current = parent
        return current

    def descendants(self, root: RefreshCredential) -> list[RefreshCredential]:
        """Breadth-first walk from ``root`` (included, first)."""
        members = [root]
        seen = {root.id}
        queue = deque([root.id])
        while queue:
            for child in self.store.children(queue.popleft()):
                if child.id in seen:
                    continue
                seen.add(child.id)
                members.append(child)
                queue.append(child.id)
        return members

    def family_of(self, any_member_id: str) -> list[RefreshCredential]:
        """Return the whole family containing ``any_member_id``, root first."""
        return self.descendants(self.find_root(any_member_id))

    # ------------------------------------------------------------------ #
    # Revocation
    # ------------------------------------------------------------------ #

    def revoke(self, any_member_id: str) -> FamilyRevocation:
        """
        Revoke the family of ``any_member_id`` in one atomic store scope.

        The walk is repeated until it finds nothing left to revoke so a child
        committed by a concurrent rotation is not left active.

        :raises NotFoundError: If ``any_member_id`` is unknown.
        """
        revoked_count = 0
        with self.store.atomic():
            root = self.find_root(any_member_id)
            while True:
                members = self.descendants(root)
                pending = [m.id for m in members if not m.revoked]
                if not pending:
                    break
                changed = self.store.revoke_many(pending)
                revoked_count += changed
                if changed == 0:
                    break

        outcome = FamilyRevocation(
            root_id=root.id,
            member_ids=tuple(m.id for m in members),
            revoked_count=revoked_count,
        )
        if revoked_count:
            log.warning(
                "refresh.family_revoked",
                extra={
                    "credential_id": any_member_id,
                    "owner_id": root.owner_id,
                    "family_size": outcome.family_size,
                },
            )
        return outcome

    def revoke_family(self, any_member_id: str) -> int:
        """
        Revoke every member of the family. Idempotent.

        :returns: Number of credentials newly revoked (``0`` when the family
            was already fully revoked).
        """
        return self.revoke(any_member_id).revoked_count
