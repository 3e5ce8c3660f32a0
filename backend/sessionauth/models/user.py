"""User model: login identity, role and lockout state."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates
from werkzeug.security import check_password_hash, generate_password_hash

from sessionauth.core.extensions import db

from .base import PKMixin, ReprMixin, TimestampMixin, as_utc, utcnow


class UserRole(StrEnum):
    """Roles embedded as a claim in access tokens."""

    USER = "user"
    ADMIN = "admin"


class User(PKMixin, ReprMixin, TimestampMixin, db.Model):
    """
    Authentication identity owning refresh credentials.

    Fields
    ------
    email : str
        Login email. Stored normalized (lowercase, trimmed).
    password_hash : str
        Hashed password (write-only setter via ``password``).
    role : str
        One of :class:`UserRole`; copied into access tokens.
    failed_login_attempts : int
        Consecutive failed logins since the last success.
    locked_until : datetime | None
        End of the current lock window, if any.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(254), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(254), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.USER.value)
    failed_login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    locked_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
        Index("ix_users_email", "email"),
    )

    # -------------------- Password API --------------------
    @property
    def password(self) -> Any:  # pragma: no cover - explicit write-only contract
        """
        Disallow reading passwords.

        :raises AttributeError: Always, to ensure password is write-only.
        """
        raise AttributeError("Password is write-only.")

    @password.setter
    def password(self, raw: str) -> None:
        """
        Hash and set the password.

        :param raw: Plain text password to hash.
        :type raw: str
        """
        if not isinstance(raw, str) or not raw:
            raise ValueError("Password must be a non-empty string.")
        self.password_hash = generate_password_hash(raw)

    def verify_password(self, raw: str) -> bool:
        """
        Verify a password against the stored hash.

        :param raw: Plain text password candidate.
        :type raw: str
        :returns: ``True`` if it matches; otherwise ``False``.
        :rtype: bool
        """
        if not self.password_hash:
            return False
        return bool(check_password_hash(self.password_hash, raw))

    # -------------------- Lockout --------------------
    def is_locked(self, now: datetime | None = None) -> bool:
        """Return ``True`` while a lock window is active.

        An elapsed lock is cleared in place (auto-unlock).
        """
        if self.locked_until is None:
            return False
        current = now or utcnow()
        if current >= as_utc(self.locked_until):
            self.reset_login_attempts()
            return False
        return True

    def record_failed_login(
        self,
        *,
        max_attempts: int,
        lockout: timedelta,
        now: datetime | None = None,
    ) -> bool:
        """
        Count a failed login and lock the account once ``max_attempts`` is reached.

        :param max_attempts: Threshold of consecutive failures.
        :type max_attempts: int
        :param lockout: Lock window duration.
        :type lockout: timedelta
        :returns: ``True`` if this failure locked the account.
        :rtype: bool
        """
        self.failed_login_attempts = (self.failed_login_attempts or 0) + 1
        if self.failed_login_attempts >= max_attempts:
            self.locked_until = (now or utcnow()) + lockout
            return True
        return False

    def reset_login_attempts(self) -> None:
        self.failed_login_attempts = 0
        self.locked_until = None

    # -------------------- Validators --------------------
    @validates("email")
    def _normalize_email(self, key: str, value: str) -> str:
        """
        Normalize and validate email.

        :raises ValueError: If email is missing or malformed.
        """
        if not value or not isinstance(value, str):
            raise ValueError("Email is required.")
        v = value.strip().lower()
        # Minimal sanity check; full validation happens at API layer.
        if "@" not in v or "." not in v.split("@")[-1]:
            raise ValueError("Email format looks invalid.")
        return v

    @validates("role")
    def _validate_role(self, key: str, value: str) -> str:
        try:
            return UserRole(value).value
        except ValueError as exc:
            raise ValueError(f"Unknown role: {value!r}") from exc
