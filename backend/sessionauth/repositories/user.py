"""User repository for persistence and authentication lookups."""

from __future__ import annotations

from typing import cast

from sqlalchemy import select

from sessionauth.models.user import User
from sessionauth.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Persistence-only repository for :class:`User`.

    It NEVER issues tokens or touches refresh credentials; lockout policy
    lives on the model and is driven by :class:`~sessionauth.services.auth.service.AuthService`.
    """

    model = User

    def _filterable_fields(self):
        """Whitelist fields safe for equality filters."""
        return {
            "email": User.email,
            "role": User.role,
        }

    # ---------------------------- Lookup helpers ----------------------------

    def get_by_email(self, email: str) -> User | None:
        """Fetch a user by email (case-insensitive).

        :param email: Email address to normalise and search.
        :type email: str
        :returns: User instance or ``None`` when not found.
        :rtype: User | None
        """
        stmt = select(User).where(User.email == email.lower().strip())
        result = self.session.execute(stmt).scalars().first()
        return cast(User | None, result)

    def exists_by_email(self, email: str) -> bool:
        stmt = select(User.id).where(User.email == email.lower().strip())
        return bool(self.session.execute(stmt).first())

    def get_role(self, user_id: int) -> str | None:
        """Return the role of ``user_id`` without loading the full row."""
        stmt = select(User.role).where(User.id == user_id)
        return cast(str | None, self.session.execute(stmt).scalar_one_or_none())
