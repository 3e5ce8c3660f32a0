# sessionauth/infra/sql/sqlalchemy_user_directory.py
from __future__ import annotations

from dataclasses import dataclass

from sessionauth.repositories.user import UserRepository
from sessionauth.services._shared.ports import UserDirectory


@dataclass(slots=True)
class SQLAlchemyUserDirectory(UserDirectory):
    """Resolve roles from the ``users`` table through the Flask-scoped session."""

    repo: UserRepository | None = None

    def role_of(self, user_id: int) -> str | None:
        repo = self.repo or UserRepository()
        return repo.get_role(user_id)
