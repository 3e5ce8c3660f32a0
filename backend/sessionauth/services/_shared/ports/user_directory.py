from __future__ import annotations

from typing import Protocol


class UserDirectory(Protocol):
    """Port answering the one question token issuance asks about a user."""

    def role_of(self, user_id: int) -> str | None:
        """Return the user's role, or ``None`` if the user does not exist."""
