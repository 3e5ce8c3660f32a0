"""
sessionauth.services._shared.ports
==================================

Collection of *ports* (hexagonal interfaces) that define the contracts
for session credentials and authentication infrastructure.

These ports decouple the service layer from concrete implementations
of access-token signing, refresh credential persistence and user lookup.

Modules
-------
- :mod:`access_token_codec`:
    Defines :class:`~.AccessTokenCodec`: encode/decode of the short-lived access token.

- :mod:`refresh_token_store`:
    Defines :class:`~.RefreshCredential` and :class:`~.RefreshTokenStore`:
    the refresh credential record and its persistence contract.

- :mod:`user_directory`:
    Defines :class:`~.UserDirectory`: role lookup used when issuing tokens.

Design Notes
------------
Concrete adapters (SQLAlchemy, Redis, Flask-JWT-Extended) live under
``sessionauth.infra``; :class:`~.InMemoryRefreshTokenStore` here backs the
``memory`` store backend.
"""

from __future__ import annotations

from sessionauth.services._shared.errors import DuplicateSecretError

from .access_token_codec import AccessClaims, AccessTokenCodec, TokenDecodeError
from .refresh_token_store import InMemoryRefreshTokenStore, RefreshCredential, RefreshTokenStore
from .user_directory import UserDirectory

__all__ = [
    "AccessClaims",
    "AccessTokenCodec",
    "TokenDecodeError",
    "DuplicateSecretError",
    "RefreshCredential",
    "RefreshTokenStore",
    "InMemoryRefreshTokenStore",
    "UserDirectory",
]
