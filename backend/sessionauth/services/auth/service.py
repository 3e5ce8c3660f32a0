# sessionauth/services/auth/service.py
from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.exc import IntegrityError

from sessionauth.models.user import User
from sessionauth.services._shared.base import BaseService, ServiceContext
from sessionauth.services._shared.errors import (
    AccountLockedError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ServiceError,
    violates,
)
from sessionauth.services._shared.ports import (
    AccessTokenCodec,
    RefreshCredential,
    RefreshTokenStore,
    UserDirectory,
)
from sessionauth.services.auth.dto import (
    ChangePasswordIn,
    LoginIn,
    LogoutIn,
    RefreshIn,
    RegisterIn,
    TokenPairOut,
    UserOut,
)
from sessionauth.services.tokens import (
    FamilyRevocationService,
    IssuedTokens,
    RotationEngine,
    TokenIssuer,
    TokenSettings,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LockoutPolicy:
    """
    Failed-login lockout configuration.

    :param max_attempts: Consecutive failures that lock the account.
    :param lockout: Lock window.
    """

    max_attempts: int = 5
    lockout: timedelta = timedelta(minutes=15)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> LockoutPolicy:
        return cls(
            max_attempts=int(config.get("LOGIN_MAX_FAILED_ATTEMPTS", 5)),
            lockout=timedelta(minutes=int(config.get("LOGIN_LOCKOUT_MINUTES", 15))),
        )


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AuthService(BaseService):
    """
    Authentication lifecycle service (register / login / refresh / logout).

    Passwords and lockout state live in the ``users`` table (Unit of Work);
    refresh credentials live in the configured :class:`RefreshTokenStore`.
    Rotation and reuse detection are delegated to :class:`RotationEngine`.
    """

    def __init__(
        self,
        *,
        store: RefreshTokenStore,
        issuer: TokenIssuer,
        rotation: RotationEngine,
        family: FamilyRevocationService,
        lockout: LockoutPolicy | None = None,
        now: Callable[[], datetime] | None = None,
        ctx: ServiceContext | None = None,
    ) -> None:
        super().__init__(ctx=ctx)
        self.store = store
        self.issuer = issuer
        self.rotation = rotation
        self.family = family
        self.lockout = lockout or LockoutPolicy()
        self._now = now or _utcnow

    # ------------------------------------------------------------------ #
    # Registration
    # ------------------------------------------------------------------ #

    def register(self, dto: RegisterIn) -> UserOut:
        """
        Create a user account.

        :raises ConflictError: If the email is already registered.
        """
        try:
            with self.rw_uow() as uow:
                if uow.users.exists_by_email(dto.email):
                    raise ConflictError("User", "email already registered")
                user = User(email=dto.email, role=dto.role)
                user.password = dto.password
                uow.users.add(user)
                out = self._user_out(user)
        except IntegrityError as exc:
            if violates(exc, "uq_users_email") or violates(exc, "users.email"):
                raise ConflictError("User", "email already registered") from exc
            raise
        log.info("user.registered", extra={"owner_id": out.id})
        return out

    # ------------------------------------------------------------------ #
    # Login
    # ------------------------------------------------------------------ #

    def login(self, dto: LoginIn) -> TokenPairOut:
        """
        Verify credentials and open a new session family.

        The failure counter is committed before the error is raised, so
        lockout survives the rejected request.

        :raises AuthenticationError: Unknown email or wrong password.
        :raises AccountLockedError: The account is inside its lock window.
        """
        now = self._now()
        error: ServiceError | None = None
        user_id: int | None = None
        role: str | None = None

        with self.rw_uow() as uow:
            user = uow.users.get_by_email(dto.email)
            if user is None:
                error = AuthenticationError()
            elif user.is_locked(now):
                error = AccountLockedError(locked_until=user.locked_until)
            elif not user.verify_password(dto.password):
                locked = user.record_failed_login(
                    max_attempts=self.lockout.max_attempts,
                    lockout=self.lockout.lockout,
                    now=now,
                )
                if locked:
                    log.warning(
                        "login.locked",
                        extra={"owner_id": user.id, "attempt": user.failed_login_attempts},
                    )
                    error = AccountLockedError(locked_until=user.locked_until)
                else:
                    error = AuthenticationError()
            else:
                user.reset_login_attempts()
                user_id, role = user.id, user.role

        if error is not None:
            raise error

        issued = self.issuer.issue(user_id, role=role)
        log.info(
            "login.succeeded",
            extra={"owner_id": user_id, "credential_id": issued.refresh_credential.id},
        )
        return self._pair_out(issued)

    # ------------------------------------------------------------------ #
    # Refresh with rotation
    # ------------------------------------------------------------------ #

    def refresh(self, dto: RefreshIn) -> TokenPairOut:
        """
        Rotate a refresh credential.

        :raises RotationError: On any rejection (see :class:`RotationEngine`).
        """
        return self._pair_out(self.rotation.rotate(dto.refresh_token))

    # ------------------------------------------------------------------ #
    # Logout
    # ------------------------------------------------------------------ #

    def logout(self, dto: LogoutIn) -> int:
        """
        Sign out the session family of the presented refresh credential.

        An unknown secret is ignored, so logout never reveals whether a
        credential exists.

        :returns: Number of credentials revoked.
        """
        record = self.store.find_by_secret(dto.refresh_token) if dto.refresh_token else None
        if record is None:
            return 0
        return self.family.revoke_family(record.id)

    def logout_all(self, user_id: int) -> int:
        """Revoke every refresh credential of ``user_id``."""
        revoked = self.store.revoke_for_owner(user_id)
        log.info("logout.all", extra={"owner_id": user_id, "family_size": revoked})
        return revoked

    # ------------------------------------------------------------------ #
    # Account
    # ------------------------------------------------------------------ #

    def change_password(self, dto: ChangePasswordIn) -> int:
        """
        Replace the password and sign the user out everywhere.

        :returns: Number of refresh credentials revoked.
        :raises NotFoundError: Unknown user.
        :raises AuthenticationError: ``current_password`` is wrong.
        """
        with self.rw_uow() as uow:
            user = uow.users.get(dto.user_id)
            if user is None:
                raise NotFoundError("User", dto.user_id)
            if not user.verify_password(dto.current_password):
                raise AuthenticationError("Current password is incorrect")
            if dto.current_password == dto.new_password:
                raise ServiceError("New password must differ from the current password")
            user.password = dto.new_password

        return self.logout_all(dto.user_id)

    def whoami(self, user_id: int) -> UserOut:
        with self.rw_uow() as uow:
            user = uow.users.get(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            return self._user_out(user)

    def sessions(self, user_id: int) -> list[RefreshCredential]:
        """Every refresh credential of ``user_id`` (any state), oldest first."""
        return self.store.list_for_owner(user_id)

    # ------------------------------------------------------------------ #
    # Mapping helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _pair_out(issued: IssuedTokens) -> TokenPairOut:
        return TokenPairOut(
            access_token=issued.access_token,
            refresh_token=issued.refresh_token,
            expires_in=issued.expires_in,
        )

    @staticmethod
    def _user_out(user: User) -> UserOut:
        return UserOut(id=user.id, email=user.email, role=user.role, created_at=user.created_at)


def build_auth_service(
    *,
    config: Mapping[str, Any],
    store: RefreshTokenStore,
    codec: AccessTokenCodec,
    users: UserDirectory,
    now: Callable[[], datetime] | None = None,
) -> AuthService:
    """
    Wire the token services and :class:`AuthService` from a config mapping.

    :param config: Usually ``app.config``.
    :param store: Refresh credential store.
    :param codec: Access token codec.
    :param users: Role lookup.
    :param now: Clock shared by issuer, rotation and lockout.
    """
    settings = TokenSettings.from_config(config)
    issuer = TokenIssuer(store=store, codec=codec, users=users, settings=settings, now=now)
    family = FamilyRevocationService(store=store)
    rotation = RotationEngine(store=store, issuer=issuer, family=family, users=users, now=now)
    return AuthService(
        store=store,
        issuer=issuer,
        rotation=rotation,
        family=family,
        lockout=LockoutPolicy.from_config(config),
        now=now,
    )
