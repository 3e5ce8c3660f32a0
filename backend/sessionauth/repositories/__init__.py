"""Repository package exposing persistence-layer access for all domain models."""

from __future__ import annotations

from sessionauth.repositories.base import BaseRepository
from sessionauth.repositories.refresh_credential import RefreshCredentialRepository
from sessionauth.repositories.user import UserRepository

__all__ = [
    "BaseRepository",
    "RefreshCredentialRepository",
    "UserRepository",
]
