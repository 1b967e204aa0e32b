"""JWT token creation and verification.

Learn: JWT (JSON Web Token) provides stateless authentication.
- Access token: used for API calls and the WebSocket handshake
- Refresh token: long-lived, only good for minting a new access token

The `type` claim keeps the two apart, so a leaked refresh token can't be
replayed against the API.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from connectsphere.config import settings
from connectsphere.errors import UnauthorizedError

ACCESS = "access"
REFRESH = "refresh"


class TokenError(UnauthorizedError):
    """Raised when token verification fails."""


def _encode(user_id: str, token_type: str, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": token_type,
        "exp": now + lifetime,
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: str, expires_minutes: Optional[int] = None) -> str:
    return _encode(
        user_id,
        ACCESS,
        timedelta(minutes=expires_minutes or settings.access_token_expire_minutes),
    )


def create_refresh_token(user_id: str, expires_days: Optional[int] = None) -> str:
    return _encode(
        user_id,
        REFRESH,
        timedelta(days=expires_days or settings.refresh_token_expire_days),
    )


def verify_token(token: str, token_type: str = ACCESS) -> dict:
    """Verify and decode a JWT token.

    Returns the payload dict on success.
    Raises TokenError on failure (bad signature, expired, wrong type).
    """
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")

    if payload.get("type") != token_type:
        raise TokenError(f"Expected a {token_type} token")
    if not payload.get("sub"):
        raise TokenError("Token has no subject")
    return payload
