"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract and
validate the current user from the request. A single mechanism:
`Authorization: Bearer <access token>`.
"""

import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException

from connectsphere.auth.jwt import TokenError, verify_token


class CurrentIdentity:
    """The authenticated user making the request.

    Learn: Services only ever need the caller's id; names and ownership
    are looked up from the database where they matter.
    """

    def __init__(self, user_id: uuid.UUID):
        self.user_id = user_id

    def __repr__(self) -> str:
        return f"CurrentIdentity(user_id={self.user_id})"


def identity_from_token(token: str) -> CurrentIdentity:
    """Resolve an access token to an identity. Raises TokenError."""
    payload = verify_token(token)
    try:
        return CurrentIdentity(user_id=uuid.UUID(payload["sub"]))
    except ValueError:
        raise TokenError("Invalid token subject")


async def get_current_user_optional(
    authorization: Optional[str] = Header(None),
) -> Optional[CurrentIdentity]:
    """Extract current identity (optional — returns None if no auth).

    Learn: This is the "soft" auth dependency. A malformed or expired
    token is still a 401; only a missing header yields None.
    """
    if not authorization or not authorization.startswith("Bearer "):
        return None
    try:
        return identity_from_token(authorization[7:])
    except TokenError as e:
        raise HTTPException(
            status_code=401,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user(
    identity: Optional[CurrentIdentity] = Depends(get_current_user_optional),
) -> CurrentIdentity:
    """Extract current identity (required — 401 if no auth)."""
    if not identity:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity
