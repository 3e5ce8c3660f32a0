"""
Domain-level exceptions used within the service layer.

These exceptions are **framework-agnostic** and should never import or depend
on Flask or HTTP. They serve as stable contracts between repositories, store
adapters, domain objects, and application services.

The translation to HTTP responses (RFC 7807) is handled by
``BaseService.translate_exceptions()`` together with ``sessionauth/core/errors.py``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy.exc import IntegrityError


def violates(exc: IntegrityError, constraint_name: str) -> bool:
    """
    Check whether an IntegrityError originates from a specific constraint.

    Parameters
    ----------
    exc : IntegrityError
        The exception raised by SQLAlchemy during flush/commit.
    constraint_name : str
        The name of the database constraint to match (e.g., 'uq_users_email').

    Returns
    -------
    bool
        True if the IntegrityError matches the given constraint.
    """
    message = str(exc.orig).lower() if exc.orig else ""
    return constraint_name.lower() in message


# --------------------------------------------------------------------------- #
# Base types
# --------------------------------------------------------------------------- #


class ServiceError(Exception):
    """
    Base class for all service-level errors.

    Notes
    -----
    - These are *not* HTTP errors.
    - They can be safely raised from repositories, stores or domain logic.
    - ``BaseService.translate_exceptions`` maps them to API errors.
    """

    pass


# --------------------------------------------------------------------------- #
# Generic errors
# --------------------------------------------------------------------------- #


@dataclass(slots=True)
class NotFoundError(ServiceError):
    """
    Raised when an entity is not found.

    :param entity: Entity name (e.g., "User").
    :type entity: str
    :param key: Identifier or search key.
    :type key: str | int
    """

    entity: str
    key: str | int

    def __str__(self) -> str:
        return f"{self.entity} not found: {self.key}"


@dataclass(slots=True)
class ConflictError(ServiceError):
    """
    Raised when a unique constraint or business rule conflict occurs.

    :param entity: Entity name (e.g., "User").
    :type entity: str
    :param detail: Short human-readable explanation.
    :type detail: str
    """

    entity: str
    detail: str

    def __str__(self) -> str:
        return f"Conflict on {self.entity}: {self.detail}"


class AuthenticationError(ServiceError):
    """Raised when credentials (password or access token) are rejected."""

    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message)


@dataclass(slots=True)
class AccountLockedError(ServiceError):
    """
    Raised while an account is inside its lockout window.

    :param locked_until: End of the lock window (UTC).
    :type locked_until: datetime
    """

    locked_until: datetime

    def __str__(self) -> str:
        return (
            "Account is locked due to multiple failed login attempts. "
            f"Try again after {self.locked_until:%Y-%m-%d %H:%M:%S} UTC"
        )


class StoreUnavailableError(ServiceError):
    """Raised by store adapters when the backing database/cache cannot be reached."""


class DuplicateSecretError(ServiceError):
    """Raised by ``RefreshTokenStore.insert`` when the secret already exists."""


class SecretGenerationError(ServiceError):
    """Raised when repeated secret collisions point at a degraded randomness source."""


# --------------------------------------------------------------------------- #
# Refresh rotation
# --------------------------------------------------------------------------- #

#: The only message a client ever sees for a rejected refresh credential.
INVALID_REFRESH_MESSAGE = "refresh token is not valid"


class RotationFailure(Enum):
    """Why a presented refresh credential was rejected."""

    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    REVOKED = "revoked"
    REUSE_DETECTED = "reuse_detected"
    UNAVAILABLE = "unavailable"

    @property
    def is_security_rejection(self) -> bool:
        return self is not RotationFailure.UNAVAILABLE


class RotationError(ServiceError):
    """
    Typed rejection raised by the rotation engine.

    ``kind`` is for logs and internal branching only. ``str(error)`` is the
    client-safe message: identical for every security rejection so callers
    cannot tell which check failed.

    :param kind: Failure kind.
    :type kind: RotationFailure
    :param credential_id: Id of the presented credential, when it was found.
    :type credential_id: str | None
    """

    def __init__(self, kind: RotationFailure, *, credential_id: str | None = None) -> None:
        self.kind = kind
        self.credential_id = credential_id
        message = (
            INVALID_REFRESH_MESSAGE
            if kind.is_security_rejection
            else "refresh service temporarily unavailable"
        )
        super().__init__(message)

    def __repr__(self) -> str:
        return f"RotationError(kind={self.kind.name}, credential_id={self.credential_id!r})"
