"""Service layer public API.

This package exposes the essential building blocks for the service layer so that
callers can import from :mod:`sessionauth.services` without knowing internal structure.

Re-exports
----------
- Base primitives (from ``sessionauth.services._shared.base``)
    * :class:`BaseService`
    * :class:`ServiceContext`

- Token services (from ``sessionauth.services.tokens``)
    * :class:`TokenIssuer`, :class:`RotationEngine`, :class:`FamilyRevocationService`
    * DTOs: :class:`IssuedTokens`, :class:`TokenSettings`

- Auth service (from ``sessionauth.services.auth``)
    * :class:`AuthService`, :func:`build_auth_service`
    * DTOs: :class:`RegisterIn`, :class:`LoginIn`, :class:`RefreshIn`,
      :class:`LogoutIn`, :class:`ChangePasswordIn`, :class:`TokenPairOut`, :class:`UserOut`
"""

from __future__ import annotations

from ._shared.base import BaseService, ServiceContext
from .auth.dto import (
    ChangePasswordIn,
    LoginIn,
    LogoutIn,
    RefreshIn,
    RegisterIn,
    TokenPairOut,
    UserOut,
)
from .auth.service import AuthService, LockoutPolicy, build_auth_service
from .tokens import (
    FamilyRevocationService,
    IssuedTokens,
    RotationEngine,
    TokenIssuer,
    TokenSettings,
)

__all__ = [
    # Base
    "BaseService",
    "ServiceContext",
    # Tokens
    "TokenIssuer",
    "RotationEngine",
    "FamilyRevocationService",
    "IssuedTokens",
    "TokenSettings",
    # Auth
    "AuthService",
    "LockoutPolicy",
    "build_auth_service",
    "RegisterIn",
    "LoginIn",
    "RefreshIn",
    "LogoutIn",
    "ChangePasswordIn",
    "TokenPairOut",
    "UserOut",
]
