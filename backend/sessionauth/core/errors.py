"""Problem Details (RFC 7807) rendering for every error the API returns."""

from __future__ import annotations

import logging
from datetime import datetime
from http import HTTPStatus
from typing import Any

from flask import Flask, Response, has_request_context, jsonify, request
from marshmallow import ValidationError as MarshmallowValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from werkzeug.exceptions import HTTPException
from werkzeug.http import http_date

from sessionauth.core.logger import ensure_request_id

log = logging.getLogger(__name__)

PROBLEM_MIMETYPE = "application/problem+json"

_CODES_BY_STATUS: dict[int, str] = {
    400: "bad_request",
    401: "unauthorized",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    415: "unsupported_media_type",
    422: "unprocessable_entity",
    423: "locked",
    500: "internal_server_error",
    503: "service_unavailable",
}


def problem_response(
    status: int,
    code: str,
    detail: str,
    *,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> Response:
    """
    Build an ``application/problem+json`` response and log it.

    :param status: HTTP status code.
    :param code: Stable machine-readable error code.
    :param detail: Client-safe summary.
    :param details: Optional structured payload (validation messages).
    :param headers: Extra response headers (``WWW-Authenticate``, ``Retry-After``).
    """
    status = int(status)
    body: dict[str, Any] = {
        "type": "about:blank",
        "title": HTTPStatus(status).phrase,
        "status": status,
        "detail": detail,
        "instance": request.path if has_request_context() else None,
        "code": code,
        "request_id": ensure_request_id(),
    }
    if details:
        body["details"] = details

    log.log(
        logging.ERROR if status >= 500 else logging.WARNING,
        "api.error",
        extra={"status": status, "code": code},
        exc_info=status == HTTPStatus.INTERNAL_SERVER_ERROR,
    )

    resp = jsonify(body)
    resp.status_code = status
    resp.mimetype = PROBLEM_MIMETYPE
    if headers:
        resp.headers.update(headers)
    return resp


class APIError(Exception):
    """
    An error that maps one-to-one onto an HTTP problem response.

    Subclasses fix ``status_code``/``code``; callers may still override both.

    Parameters
    ----------
    message : str, optional
        Client-safe description. Defaults to the class ``default_message``.
    status_code : int, optional
        HTTP status, defaults to the class attribute.
    code : str, optional
        Machine-readable identifier, defaults to the class attribute.
    details : dict[str, Any] | None, optional
        Structured payload included in the body.
    headers : dict[str, str] | None, optional
        Extra headers set on the response.
    """

    status_code: int = HTTPStatus.BAD_REQUEST
    code: str = "bad_request"
    default_message: str = "Bad request"

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        if status_code is not None:
            self.status_code = int(status_code)
        if code is not None:
            self.code = code
        self.details = details or {}
        self.headers = dict(headers or {})

    def to_response(self) -> Response:
        return problem_response(
            int(self.status_code),
            self.code,
            self.message,
            details=self.details or None,
            headers=self.headers,
        )


class NotFound(APIError):
    status_code = HTTPStatus.NOT_FOUND
    code = "not_found"
    default_message = "Resource not found"


class Conflict(APIError):
    status_code = HTTPStatus.CONFLICT
    code = "conflict"
    default_message = "Conflict"


class Unauthorized(APIError):
    """401 carrying a bearer challenge."""

    status_code = HTTPStatus.UNAUTHORIZED
    code = "unauthorized"
    default_message = "Unauthorized"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        challenge = 'Bearer realm="api"'
        if code and code != self.code:
            challenge += f', error="{code}"'
        super().__init__(message, code=code, headers={"WWW-Authenticate": challenge})


class Locked(APIError):
    """423 while an account is locked; ``Retry-After`` names the unlock time."""

    status_code = HTTPStatus.LOCKED
    code = "locked"
    default_message = "Account is locked"

    def __init__(self, message: str | None = None, *, until: datetime | None = None) -> None:
        headers = {"Retry-After": http_date(until)} if until is not None else None
        super().__init__(message, headers=headers)


class ServiceUnavailable(APIError):
    status_code = HTTPStatus.SERVICE_UNAVAILABLE
    code = "service_unavailable"
    default_message = "Service temporarily unavailable"


def _register_jwt_handlers(app: Flask) -> None:
    """Render Flask-JWT-Extended rejections as problems instead of ``{"msg": ...}``."""

    manager = app.extensions["flask-jwt-extended"]

    @manager.unauthorized_loader
    def _missing_token(reason: str):
        return Unauthorized(reason).to_response()

    @manager.invalid_token_loader
    def _invalid_token(reason: str):
        return Unauthorized("Invalid access token", code="invalid_token").to_response()

    @manager.expired_token_loader
    def _expired_token(jwt_header: dict, jwt_payload: dict):
        return Unauthorized("Access token has expired", code="token_expired").to_response()


def init_app(app: Flask) -> None:
    """
    Attach problem+json handlers to ``app``.

    Raw database errors and unexpected exceptions never reach the client;
    each handler returns a fixed, client-safe detail.
    """

    _register_jwt_handlers(app)

    @app.errorhandler(APIError)
    def handle_api_error(err: APIError):
        return err.to_response()

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        status = int(err.code or HTTPStatus.INTERNAL_SERVER_ERROR)
        code = _CODES_BY_STATUS.get(status, "error")
        detail = (err.description or HTTPStatus(status).phrase).strip()
        if status == HTTPStatus.NOT_FOUND:
            detail = f"Route '{request.path}' not found"
        headers = None
        valid_methods = getattr(err, "valid_methods", None)
        if valid_methods:
            headers = {"Allow": ", ".join(valid_methods)}
        return problem_response(status, code, detail, headers=headers)

    @app.errorhandler(MarshmallowValidationError)
    def handle_validation_error(err: MarshmallowValidationError):
        return problem_response(
            HTTPStatus.UNPROCESSABLE_ENTITY,
            "validation_error",
            "Validation failed",
            details={"errors": err.messages},
        )

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(err: IntegrityError):
        return problem_response(HTTPStatus.CONFLICT, "conflict", "Resource conflict")

    @app.errorhandler(OperationalError)
    def handle_operational_error(err: OperationalError):
        log.error("api.database_unavailable", exc_info=err)
        return problem_response(
            HTTPStatus.SERVICE_UNAVAILABLE,
            "service_unavailable",
            ServiceUnavailable.default_message,
        )

    @app.errorhandler(Exception)
    def handle_unexpected_error(err: Exception):
        return problem_response(
            HTTPStatus.INTERNAL_SERVER_ERROR, "internal_server_error", "Unexpected error"
        )
