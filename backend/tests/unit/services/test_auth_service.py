# tests/unit/services/test_auth_service.py
from __future__ import annotations

from datetime import timedelta

import pytest
from freezegun import freeze_time

from sessionauth.infra.sql.sqlalchemy_user_directory import SQLAlchemyUserDirectory
from sessionauth.models.user import User
from sessionauth.services._shared.errors import (
    AccountLockedError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    RotationError,
    RotationFailure,
    ServiceError,
)
from sessionauth.services._shared.ports import InMemoryRefreshTokenStore
from sessionauth.services.auth.dto import (
    ChangePasswordIn,
    LoginIn,
    LogoutIn,
    RefreshIn,
    RegisterIn,
    TokenPairOut,
)
from sessionauth.services.auth.service import AuthService, build_auth_service
from tests.factories.user import DEFAULT_PASSWORD, UserFactory
from tests.helpers.doubles import StubAccessTokenCodec


# ------------------------------ Fixtures ---------------------------------- #
@pytest.fixture()
def service() -> AuthService:
    """
    Build an AuthService on the SQL user table and an in-memory credential store.

    .. note::
       Lockout uses the default policy (5 failures, 15 minutes).
    """
    return build_auth_service(
        config={},
        store=InMemoryRefreshTokenStore(),
        codec=StubAccessTokenCodec(),
        users=SQLAlchemyUserDirectory(),
    )


@pytest.fixture()
def user(session) -> User:
    u = UserFactory(email="ada@example.com")
    session.flush()
    return u


def _login(service, email="ada@example.com", password=DEFAULT_PASSWORD) -> TokenPairOut:
    return service.login(LoginIn(email=email, password=password))


# ------------------------------ Register ---------------------------------- #
def test_register_creates_user(service, session):
    out = service.register(RegisterIn(email="  New@Example.com ", password="Str0ng!pass"))

    assert out.id is not None
    assert out.email == "new@example.com"
    assert out.role == "user"
    stored = session.get(User, out.id)
    assert stored.verify_password("Str0ng!pass")


def test_register_duplicate_email_conflicts(service, user):
    with pytest.raises(ConflictError):
        service.register(RegisterIn(email="ADA@example.com", password="Str0ng!pass"))


# ------------------------------ Login ------------------------------------- #
def test_login_issues_pair_and_family_root(service, user):
    pair = _login(service)

    assert pair.access_token.startswith(f"access.{user.id}.")
    assert pair.token_type == "Bearer"
    assert pair.expires_in == 900
    root = service.store.find_by_secret(pair.refresh_token)
    assert root is not None
    assert root.owner_id == user.id
    assert root.parent_id is None


def test_each_login_opens_a_new_family(service, user):
    first = service.store.find_by_secret(_login(service).refresh_token)
    second = service.store.find_by_secret(_login(service).refresh_token)

    assert first.id != second.id
    assert first.parent_id is None and second.parent_id is None


def test_login_unknown_email_and_wrong_password_look_the_same(service, user):
    with pytest.raises(AuthenticationError) as unknown:
        _login(service, email="nobody@example.com")
    with pytest.raises(AuthenticationError) as wrong:
        _login(service, password="nope")

    assert str(unknown.value) == str(wrong.value) == "Invalid credentials"


def test_failed_login_counter_survives_the_rejection(service, user, session):
    with pytest.raises(AuthenticationError):
        _login(service, password="nope")

    session.expire_all()
    assert session.get(User, user.id).failed_login_attempts == 1


def test_success_resets_failed_counter(service, user, session):
    with pytest.raises(AuthenticationError):
        _login(service, password="nope")

    _login(service)

    session.expire_all()
    assert session.get(User, user.id).failed_login_attempts == 0


def test_lockout_after_max_failures_and_unlock_after_window(service, user):
    with freeze_time("2026-03-01 09:00:00") as frozen:
        for _ in range(4):
            with pytest.raises(AuthenticationError):
                _login(service, password="nope")

        with pytest.raises(AccountLockedError):
            _login(service, password="nope")

        # Correct password is refused while locked
        with pytest.raises(AccountLockedError):
            _login(service)

        frozen.tick(timedelta(minutes=14))
        with pytest.raises(AccountLockedError):
            _login(service)

        frozen.tick(timedelta(minutes=2))
        assert _login(service).refresh_token


# ------------------------------ Refresh ----------------------------------- #
def test_refresh_rotates_and_blocks_reuse(service, user):
    pair1 = _login(service)
    pair2 = service.refresh(RefreshIn(refresh_token=pair1.refresh_token))

    assert pair2.refresh_token != pair1.refresh_token
    with pytest.raises(RotationError) as excinfo:
        service.refresh(RefreshIn(refresh_token=pair1.refresh_token))
    assert excinfo.value.kind is RotationFailure.REUSE_DETECTED

    # The child issued by the legitimate rotation is now dead too
    with pytest.raises(RotationError) as excinfo:
        service.refresh(RefreshIn(refresh_token=pair2.refresh_token))
    assert excinfo.value.kind is RotationFailure.REVOKED


def test_refresh_fails_if_user_deleted(service, user, session):
    pair = _login(service)
    session.delete(user)
    session.flush()

    with pytest.raises(RotationError) as excinfo:
        service.refresh(RefreshIn(refresh_token=pair.refresh_token))
    assert excinfo.value.kind is RotationFailure.NOT_FOUND


# ------------------------------ Logout ------------------------------------ #
def test_logout_revokes_the_presented_family_only(service, user):
    pair = _login(service)
    rotated = service.refresh(RefreshIn(refresh_token=pair.refresh_token))
    other = _login(service)

    revoked = service.logout(LogoutIn(refresh_token=rotated.refresh_token))

    assert revoked == 2
    assert service.store.find_by_secret(rotated.refresh_token).revoked is True
    assert service.store.find_by_secret(pair.refresh_token).revoked is True
    assert service.store.find_by_secret(other.refresh_token).revoked is False


def test_logout_unknown_secret_is_silent(service):
    assert service.logout(LogoutIn(refresh_token="unknown")) == 0


def test_logout_all_revokes_every_family(service, user):
    pairs = [_login(service) for _ in range(3)]

    assert service.logout_all(user.id) == 3
    for pair in pairs:
        assert service.store.find_by_secret(pair.refresh_token).revoked is True
    assert all(c.revoked for c in service.sessions(user.id))


# ------------------------------ Account ----------------------------------- #
def test_change_password_revokes_sessions(service, user):
    pair = _login(service)

    revoked = service.change_password(
        ChangePasswordIn(user_id=user.id, current_password=DEFAULT_PASSWORD, new_password="N3w!pass")
    )

    assert revoked == 1
    assert service.store.find_by_secret(pair.refresh_token).revoked is True
    with pytest.raises(AuthenticationError):
        _login(service)
    assert _login(service, password="N3w!pass").access_token


def test_change_password_requires_current_password(service, user):
    with pytest.raises(AuthenticationError):
        service.change_password(
            ChangePasswordIn(user_id=user.id, current_password="wrong", new_password="N3w!pass")
        )


def test_change_password_rejects_same_password(service, user):
    with pytest.raises(ServiceError):
        service.change_password(
            ChangePasswordIn(
                user_id=user.id, current_password=DEFAULT_PASSWORD, new_password=DEFAULT_PASSWORD
            )
        )


def test_whoami(service, user):
    out = service.whoami(user.id)
    assert (out.id, out.email, out.role) == (user.id, "ada@example.com", "user")

    with pytest.raises(NotFoundError):
        service.whoami(999_999)
