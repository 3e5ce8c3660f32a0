# sessionauth/infra/jwt/flask_jwt_access_codec.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, cast

from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from sessionauth.services._shared.ports import AccessClaims, AccessTokenCodec, TokenDecodeError

ROLE_CLAIM = "role"


@dataclass(slots=True)
class FlaskJWTAccessCodec(AccessTokenCodec):
    """
    Adapter for Flask-JWT-Extended.

    The subject is the stringified user id and the role travels as a custom
    claim, so ``@jwt_required`` views can read both with ``get_jwt()``.

    .. note::
       Requires an active Flask app context with proper JWT settings.
    """

    def encode(self, user_id: int, role: str, ttl: timedelta) -> str:
        from flask_jwt_extended import create_access_token

        return cast(
            str,
            create_access_token(
                identity=str(user_id),
                additional_claims={ROLE_CLAIM: role},
                expires_delta=ttl,
            ),
        )

    def decode(self, token: str) -> AccessClaims:
        from flask_jwt_extended import decode_token

        try:
            payload = cast(dict[str, Any], decode_token(token))
        except (PyJWTError, JWTExtendedException) as exc:
            raise TokenDecodeError(str(exc)) from exc

        if payload.get("type") != "access":
            raise TokenDecodeError("not an access token")
        try:
            return AccessClaims(
                user_id=int(payload["sub"]),
                role=str(payload[ROLE_CLAIM]),
                expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=UTC),
                jti=str(payload["jti"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenDecodeError(f"malformed claims: {exc}") from exc
