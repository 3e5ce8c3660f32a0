from sessionauth.models.refresh_credential import RefreshCredentialRecord
from sessionauth.models.user import User, UserRole

__all__ = [
    "RefreshCredentialRecord",
    "User",
    "UserRole",
]
