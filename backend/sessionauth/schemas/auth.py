"""Authentication-related Marshmallow schemas."""

from __future__ import annotations

import re

from marshmallow import Schema, ValidationError, fields, validate, validates, validates_schema

from sessionauth.models.user import UserRole

SPECIAL_CHARACTERS = "@$!%*?&#"

# (pattern, message) pairs checked in order; every failing rule is reported.
PASSWORD_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter."),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter."),
    (re.compile(r"\d"), "Password must contain at least one number."),
    (
        re.compile(f"[{re.escape(SPECIAL_CHARACTERS)}]"),
        f"Password must contain at least one special character ({SPECIAL_CHARACTERS}).",
    ),
)


def password_policy_errors(value: str) -> list[str]:
    """Return the password policy violations of ``value`` (empty when valid)."""
    return [message for pattern, message in PASSWORD_RULES if not pattern.search(value)]


def _password_field() -> fields.String:
    return fields.String(required=True, load_only=True, validate=validate.Length(min=8, max=128))


class _NewPasswordMixin:
    """Shared checks for payloads that set a password."""

    password_field = "password"

    @validates_schema
    def check_new_password(self, data, **kwargs):
        value = data.get(self.password_field)
        if value is None:
            return
        problems = password_policy_errors(value)
        if problems:
            raise ValidationError(problems, field_name=self.password_field)
        if data.get("confirm_password") != value:
            raise ValidationError("Passwords do not match.", field_name="confirm_password")


class RegisterSchema(_NewPasswordMixin, Schema):
    """Input payload for account registration."""

    email = fields.Email(required=True, validate=validate.Length(max=254))
    password = _password_field()
    confirm_password = fields.String(required=True, load_only=True)


class LoginSchema(Schema):
    """Input payload for authenticating a user."""

    email = fields.Email(required=True, validate=validate.Length(max=254))
    password = fields.String(required=True, load_only=True, validate=validate.Length(min=1, max=128))


class RefreshSchema(Schema):
    """Input payload for rotating a refresh credential."""

    refresh_token = fields.String(required=True, validate=validate.Length(min=1, max=200))


class LogoutSchema(RefreshSchema):
    """Input payload for signing out one session family."""


class ChangePasswordSchema(_NewPasswordMixin, Schema):
    """Input payload for changing the authenticated user's password."""

    password_field = "new_password"

    current_password = fields.String(required=True, load_only=True)
    new_password = _password_field()
    confirm_password = fields.String(required=True, load_only=True)


class TokenResponseSchema(Schema):
    """Response payload containing a freshly issued token pair."""

    access_token = fields.String(required=True)
    refresh_token = fields.String(required=True)
    expires_in = fields.Integer(required=True)
    token_type = fields.String(dump_default="Bearer")


class UserSchema(Schema):
    """Public representation of a user."""

    id = fields.Integer(required=True)
    email = fields.Email(required=True)
    role = fields.String(required=True)
    created_at = fields.DateTime(allow_none=True)


class CreateUserSchema(Schema):
    """Payload accepted by the ``create-user`` CLI command."""

    email = fields.Email(required=True, validate=validate.Length(max=254))
    password = _password_field()
    role = fields.String(load_default=UserRole.USER.value)

    @validates("role")
    def check_role(self, value, **kwargs):
        if value not in {r.value for r in UserRole}:
            raise ValidationError(f"Unknown role: {value!r}")
