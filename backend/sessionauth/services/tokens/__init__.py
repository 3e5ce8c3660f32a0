"""Refresh credential issuance, rotation and family revocation."""

from .dto import IssuedTokens, TokenSettings
from .family import FamilyRevocation, FamilyRevocationService
from .issuer import TokenIssuer
from .rotation import RotationEngine

__all__ = [
    "FamilyRevocation",
    "FamilyRevocationService",
    "IssuedTokens",
    "RotationEngine",
    "TokenIssuer",
    "TokenSettings",
]
