"""Persistent refresh credential rows (one per issued refresh secret)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sessionauth.core.extensions import db

from .base import ReprMixin, TimestampMixin


class RefreshCredentialRecord(ReprMixin, TimestampMixin, db.Model):
    """
    Row backing a :class:`~sessionauth.services._shared.ports.RefreshCredential`.

    ``parent_id`` points at the credential consumed to produce this one; a
    ``NULL`` parent marks a family root created at login. ``used`` and
    ``revoked`` only ever move from ``False`` to ``True`` and are changed
    through :meth:`mark_used` and :meth:`revoke` (or the repository's
    conditional updates), never by plain assignment in service code.
    """

    __tablename__ = "refresh_credentials"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    owner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    secret: Mapped[str] = mapped_column(String(200), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    parent_id: Mapped[str | None] = mapped_column(
        String(32), ForeignKey("refresh_credentials.id"), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("secret", name="uq_refresh_credentials_secret"),
        Index("ix_refresh_credentials_owner_id", "owner_id"),
        Index("ix_refresh_credentials_parent_id", "parent_id"),
        Index("ix_refresh_credentials_expires_at", "expires_at"),
    )

    def mark_used(self) -> None:
        """
        Consume the credential.

        :raises ValueError: If it was already used or has been revoked.
        """
        if self.used:
            raise ValueError("Refresh credential is already marked as used.")
        if self.revoked:
            raise ValueError("Cannot mark a revoked refresh credential as used.")
        self.used = True

    def revoke(self) -> bool:
        """Revoke the credential. :returns: ``False`` if it was already revoked."""
        if self.revoked:
            return False
        self.revoked = True
        return True
