"""Shared API helpers for request parsing and cross-cutting concerns."""

from __future__ import annotations

import functools
import time
from collections.abc import Callable
from typing import Any, TypeVar

from flask import Response, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from sessionauth.core.errors import Unauthorized
from sessionauth.core.extensions import get_refresh_store
from sessionauth.infra.jwt.flask_jwt_access_codec import FlaskJWTAccessCodec
from sessionauth.infra.sql.sqlalchemy_user_directory import SQLAlchemyUserDirectory
from sessionauth.services._shared.base import BaseService
from sessionauth.services._shared.errors import ServiceError
from sessionauth.services.auth.service import AuthService, build_auth_service

F = TypeVar("F", bound=Callable[..., Any])


def get_auth_service() -> AuthService:
    """Build an :class:`AuthService` bound to the current application."""

    return build_auth_service(
        config=current_app.config,
        store=get_refresh_store(),
        codec=FlaskJWTAccessCodec(),
        users=SQLAlchemyUserDirectory(),
    )


def require_auth(func: F) -> F:
    """Ensure the request carries a valid JWT access token."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        verify_jwt_in_request(optional=False)
        return func(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


def current_user_id() -> int:
    """Return the authenticated user id from the verified JWT subject."""

    identity = get_jwt_identity()
    try:
        return int(identity)
    except (TypeError, ValueError):
        raise Unauthorized("Invalid token subject") from None


def translate_service_errors(func: F) -> F:
    """Re-raise :class:`ServiceError` as the matching API error."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        try:
            return func(*args, **kwargs)
        except ServiceError as exc:
            raise BaseService().translate_exceptions(exc) from exc

    return wrapper  # type: ignore[return-value]


def json_response(payload: Any, *, status: int = 200) -> Response:
    """Return a JSON response enforcing a consistent MIME type."""

    response = jsonify(payload)
    response.status_code = status
    return response


def no_store(response: Response) -> Response:
    """Forbid caches from keeping responses that carry credentials."""

    response.headers["Cache-Control"] = "no-store"
    response.headers["Pragma"] = "no-cache"
    return response


def timing(func: F) -> F:
    """Decorator capturing handler execution time in milliseconds."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            request_endpoint = getattr(request, "endpoint", None)
            current_app.logger.debug(
                "request.elapsed",
                extra={"endpoint": request_endpoint, "elapsed_ms": round(elapsed_ms, 2)},
            )

    return wrapper  # type: ignore[return-value]
