# sessionauth/services/tokens/issuer.py
from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import UTC, datetime

from sessionauth.services._shared.errors import (
    DuplicateSecretError,
    NotFoundError,
    SecretGenerationError,
)
from sessionauth.services._shared.ports import (
    AccessTokenCodec,
    RefreshCredential,
    RefreshTokenStore,
    UserDirectory,
)
from sessionauth.services.tokens.dto import IssuedTokens, TokenSettings

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TokenIssuer:
    """
    Create access/refresh pairs.

    Called at login (new family root, one store insert) and by the rotation
    engine (child, written together with the parent flip by one store
    ``consume``). The access token is always signed before the store write.
    """

    def __init__(
        self,
        *,
        store: RefreshTokenStore,
        codec: AccessTokenCodec,
        users: UserDirectory,
        settings: TokenSettings | None = None,
        now: Callable[[], datetime] | None = None,
        secret_factory: Callable[[int], str] | None = None,
    ) -> None:
        """
        :param store: Refresh credential persistence.
        :param codec: Access token signer.
        :param users: Role lookup for the access token claim.
        :param settings: Lifetimes and secret size.
        :param now: Clock (UTC), injectable for tests.
        :param secret_factory: ``nbytes -> secret``; defaults to :func:`secrets.token_urlsafe`.
        """
        self.store = store
        self.codec = codec
        self.users = users
        self.settings = settings or TokenSettings()
        self._now = now or _utcnow
        self._secret_factory = secret_factory or secrets.token_urlsafe

    def issue(
        self,
        user_id: int,
        parent_id: str | None = None,
        *,
        role: str | None = None,
    ) -> IssuedTokens | None:
        """
        Issue a new pair for ``user_id``.

        Without ``parent_id`` this is a login and the credential becomes a
        family root. With ``parent_id`` the parent is consumed and the child
        stored in one store transaction (``consume``). The access token is
        signed before anything is written, so a failure here never leaves a
        consumed parent behind.

        :param user_id: Owner of the new credential.
        :param parent_id: Id of the credential being rotated; ``None`` at login.
        :param role: Role claim; looked up through the user directory when omitted.
        :returns: The access token and the persisted refresh credential, or
            ``None`` if ``parent_id`` was no longer consumable (another writer
            used or revoked it first).
        :raises NotFoundError: If the user does not exist.
        :raises SecretGenerationError: If every attempt hit a duplicate secret;
            a parent is left unconsumed.
        """
        if role is None:
            role = self.users.role_of(user_id)
            if role is None:
                raise NotFoundError("User", user_id)

        access_token = self.codec.encode(user_id, role, self.settings.access_ttl)
        credential = self._persist_new_credential(user_id, parent_id)
        if credential is None:
            return None
        return IssuedTokens(
            access_token=access_token,
            refresh_credential=credential,
            expires_in=self.settings.expires_in,
        )

    def _persist_new_credential(
        self, user_id: int, parent_id: str | None
    ) -> RefreshCredential | None:
        """Write a fresh credential, consuming ``parent_id`` when one is given."""
        attempts = self.settings.max_issue_attempts
        for attempt in range(1, attempts + 1):
            now = self._now()
            credential = RefreshCredential.create(
                owner_id=user_id,
                secret=self._secret_factory(self.settings.secret_bytes),
                expires_at=now + self.settings.refresh_ttl,
                parent_id=parent_id,
                now=now,
            )
            try:
                if parent_id is None:
                    self.store.insert(credential)
                elif not self.store.consume(parent_id, credential):
                    return None
            except DuplicateSecretError:
                log.warning(
                    "refresh.secret_collision",
                    extra={"owner_id": user_id, "attempt": attempt},
                )
                continue
            return credential

        # 256-bit secrets do not collide; repeated hits mean the RNG is broken.
        log.critical(
            "refresh.secret_generation_failed",
            extra={"owner_id": user_id, "attempt": attempts},
        )
        raise SecretGenerationError(
            f"refresh secret collided {attempts} times; randomness source is degraded"
        )
