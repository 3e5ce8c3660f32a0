# sessionauth/services/_shared/base.py
from __future__ import annotations

import logging
from dataclasses import dataclass

from sessionauth.core import errors as api_errors
from sessionauth.services._shared.errors import (
    AccountLockedError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    RotationError,
    RotationFailure,
    SecretGenerationError,
    ServiceError,
    StoreUnavailableError,
)
from sessionauth.uow.sqlalchemy_uow import SQLAlchemyUnitOfWork

log = logging.getLogger(__name__)


@dataclass(slots=True)
class ServiceContext:
    """
    Carry cross-cutting request-scoped data (auth, request ids, etc.).

    :param actor_id: Authenticated user identifier.
    :param request_id: Correlation id for logging/tracing.
    """

    actor_id: int | None = None
    request_id: str | None = None


class BaseService:
    """
    Base class for application services.

    Responsibilities
    ----------------
    * Provide a helper to run read-write units of work.
    * Centralize error translation.
    * Keep services thin, orchestration-only, no web/ORM leakage.

    Notes
    -----
    - Services must never touch the global session; always use a Unit of Work.
    - Credential state rules live on the domain types and stores.
    """

    def __init__(self, *, ctx: ServiceContext | None = None) -> None:
        self.ctx = ctx or ServiceContext()

    # -------------------------- UoW helpers ---------------------------------

    def rw_uow(self) -> SQLAlchemyUnitOfWork:
        """
        Create a read-write Unit of Work.

        :returns: Read-write UoW instance.
        :rtype: SQLAlchemyUnitOfWork
        """
        return SQLAlchemyUnitOfWork()

    # -------------------------- Error handling ------------------------------

    def translate_exceptions(self, exc: Exception) -> Exception:
        """
        Map domain/service-level errors to API-level (HTTP) errors.

        Rotation rejections collapse to one 401 message whatever their kind;
        only ``UNAVAILABLE`` is surfaced differently (503).

        :param exc: Exception raised within the service.
        :type exc: Exception
        :returns: Translated exception ready to be re-raised.
        :rtype: Exception
        """
        if isinstance(exc, RotationError):
            if exc.kind is RotationFailure.UNAVAILABLE:
                return api_errors.ServiceUnavailable(str(exc))
            # → 401, same body for every security rejection
            return api_errors.Unauthorized(str(exc), code="invalid_refresh_token")

        if isinstance(exc, AuthenticationError):
            return api_errors.Unauthorized(str(exc))

        if isinstance(exc, AccountLockedError):
            # → 423 Locked
            return api_errors.Locked(str(exc), until=exc.locked_until)

        if isinstance(exc, NotFoundError):
            return api_errors.NotFound(str(exc))

        if isinstance(exc, ConflictError):
            return api_errors.Conflict(str(exc))

        if isinstance(exc, StoreUnavailableError):
            return api_errors.ServiceUnavailable()

        if isinstance(exc, SecretGenerationError):
            log.critical("Refusing to issue credentials: %s", exc)
            return api_errors.APIError(
                message="Internal server error",
                status_code=500,
                code="internal_server_error",
            )

        # Any other ServiceError subclass → 400 Bad Request
        if isinstance(exc, ServiceError):
            return api_errors.APIError(
                message=str(exc),
                status_code=400,
                code="bad_request",
            )

        # Fallback: return untouched (will bubble up to Flask handler)
        return exc
