"""Convenience exports for application schemas."""

from __future__ import annotations

from .auth import (
    ChangePasswordSchema,
    CreateUserSchema,
    LoginSchema,
    LogoutSchema,
    RefreshSchema,
    RegisterSchema,
    TokenResponseSchema,
    UserSchema,
    password_policy_errors,
)

__all__ = [
    "ChangePasswordSchema",
    "CreateUserSchema",
    "LoginSchema",
    "LogoutSchema",
    "RefreshSchema",
    "RegisterSchema",
    "TokenResponseSchema",
    "UserSchema",
    "password_policy_errors",
]
