"""Auth API — registration, login, token refresh.

Learn: Routes for user authentication:
- POST /auth/register → create an account, returns the user + tokens
- POST /auth/login    → email/password → JWT tokens
- POST /auth/refresh  → refresh token → new token pair
- GET  /auth/me       → current user info
"""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from connectsphere.auth.dependencies import CurrentIdentity, get_current_user
from connectsphere.auth.jwt import (
    REFRESH,
    TokenError,
    create_access_token,
    create_refresh_token,
    verify_token,
)
from connectsphere.auth.password import hash_password, verify_password
from connectsphere.db.engine import get_db
from connectsphere.db.models import User

router = APIRouter(prefix="/auth")


# ─── Schemas ─────────────────────────────────────────────


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    name: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=8)


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(BaseModel):
    refresh_token: str


class UserRead(BaseModel):
    id: uuid.UUID
    email: str
    name: str
    created_at: datetime

    model_config = {"from_attributes": True}


class RegisterResponse(TokenResponse):
    user: UserRead


def _tokens(user_id: uuid.UUID) -> dict:
    return {
        "access_token": create_access_token(str(user_id)),
        "refresh_token": create_refresh_token(str(user_id)),
    }


# ─── Register ────────────────────────────────────────────


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Create a new user account and sign them in."""
    email = body.email.strip().lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalars().first():
        raise HTTPException(status_code=409, detail="Email already registered")

    user = User(email=email, name=body.name, password_hash=hash_password(body.password))
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return {"user": user, **_tokens(user.id)}


# ─── Login ───────────────────────────────────────────────


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Login with email and password → JWT tokens."""
    result = await db.execute(select(User).where(User.email == body.email.strip().lower()))
    user = result.scalars().first()

    if not user or not user.password_hash:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    return TokenResponse(**_tokens(user.id))


# ─── Refresh ────────────────────────────────────────────


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest):
    """Exchange a refresh token for a new token pair."""
    try:
        payload = verify_token(body.refresh_token, token_type=REFRESH)
    except TokenError as e:
        raise HTTPException(status_code=401, detail=e.message)
    return TokenResponse(**_tokens(uuid.UUID(payload["sub"])))


# ─── Current user ───────────────────────────────────────


@router.get("/me", response_model=UserRead)
async def get_me(
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get the current authenticated user's info."""
    user = await db.get(User, identity.user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user
