"""Authentication endpoints using the service layer."""

from __future__ import annotations

from flask import Blueprint, request

from sessionauth.api.deps import (
    current_user_id,
    get_auth_service,
    json_response,
    no_store,
    require_auth,
    timing,
    translate_service_errors,
)
from sessionauth.schemas import (
    ChangePasswordSchema,
    LoginSchema,
    LogoutSchema,
    RefreshSchema,
    RegisterSchema,
    TokenResponseSchema,
    UserSchema,
)
from sessionauth.services.auth.dto import (
    ChangePasswordIn,
    LoginIn,
    LogoutIn,
    RefreshIn,
    RegisterIn,
)

bp = Blueprint("auth", __name__)

register_schema = RegisterSchema()
login_schema = LoginSchema()
refresh_schema = RefreshSchema()
logout_schema = LogoutSchema()
change_password_schema = ChangePasswordSchema()
token_schema = TokenResponseSchema()
user_schema = UserSchema()


def _payload() -> dict:
    return request.get_json(silent=True) or {}


@bp.post("/register")
@timing
@translate_service_errors
def register():
    """Register a new user and return the created representation."""

    data = register_schema.load(_payload())
    user = get_auth_service().register(RegisterIn(email=data["email"], password=data["password"]))
    return json_response({"data": user_schema.dump(user)}, status=201)


@bp.post("/login")
@timing
@translate_service_errors
def login():
    """Authenticate credentials and open a new session family."""

    data = login_schema.load(_payload())
    pair = get_auth_service().login(LoginIn(email=data["email"], password=data["password"]))
    return no_store(json_response({"data": token_schema.dump(pair)}))


@bp.post("/refresh")
@timing
@translate_service_errors
def refresh():
    """Exchange a refresh token for a new access/refresh pair (single use)."""

    data = refresh_schema.load(_payload())
    pair = get_auth_service().refresh(RefreshIn(refresh_token=data["refresh_token"]))
    return no_store(json_response({"data": token_schema.dump(pair)}))


@bp.post("/logout")
@timing
@translate_service_errors
def logout():
    """Revoke the session family of the presented refresh token."""

    data = logout_schema.load(_payload())
    get_auth_service().logout(LogoutIn(refresh_token=data["refresh_token"]))
    return "", 204


@bp.post("/logout-all")
@require_auth
@timing
@translate_service_errors
def logout_all():
    """Revoke every refresh token of the authenticated user."""

    revoked = get_auth_service().logout_all(current_user_id())
    return json_response({"data": {"revoked": revoked}})


@bp.post("/change-password")
@require_auth
@timing
@translate_service_errors
def change_password():
    """Change the password and sign out every session."""

    data = change_password_schema.load(_payload())
    get_auth_service().change_password(
        ChangePasswordIn(
            user_id=current_user_id(),
            current_password=data["current_password"],
            new_password=data["new_password"],
        )
    )
    return "", 204


@bp.get("/whoami")
@require_auth
@timing
@translate_service_errors
def whoami():
    """Return the authenticated user profile."""

    user = get_auth_service().whoami(current_user_id())
    return json_response({"data": user_schema.dump(user)})
