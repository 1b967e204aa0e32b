"""Tests for authentication — registration, login, refresh, protected routes.

Learn: These run the real auth pipeline: passwords are hashed with bcrypt
(cheap rounds in tests) and every protected call carries a real JWT.
"""

import uuid

import pytest

from connectsphere.auth.jwt import (
    REFRESH,
    TokenError,
    create_access_token,
    create_refresh_token,
    verify_token,
)
from connectsphere.auth.password import hash_password, verify_password


async def _register(client, email="dana@example.com", name="Dana", password="s3cret-pass"):
    return await client.post(
        "/api/v1/auth/register",
        json={"email": email, "name": name, "password": password},
    )


# ─── Passwords + tokens ──────────────────────────────────


def test_password_hash_roundtrip():
    hashed = hash_password("correct horse")
    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)


def test_access_token_roundtrip():
    user_id = str(uuid.uuid4())
    payload = verify_token(create_access_token(user_id))
    assert payload["sub"] == user_id
    assert payload["type"] == "access"


def test_refresh_token_is_not_an_access_token():
    token = create_refresh_token(str(uuid.uuid4()))
    with pytest.raises(TokenError):
        verify_token(token)
    assert verify_token(token, token_type=REFRESH)["type"] == "refresh"


def test_garbage_token_rejected():
    with pytest.raises(TokenError):
        verify_token("not.a.jwt")


# ─── Routes ──────────────────────────────────────────────


@pytest.mark.asyncio
async def test_register_returns_user_and_tokens(client):
    r = await _register(client, email="Dana@Example.com")
    assert r.status_code == 201
    data = r.json()
    assert data["user"]["email"] == "dana@example.com"
    assert data["user"]["name"] == "Dana"
    assert data["access_token"]
    assert data["refresh_token"]
    assert data["token_type"] == "bearer"


@pytest.mark.asyncio
async def test_register_duplicate_email(client):
    await _register(client)
    r = await _register(client)
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_login_and_me(client):
    await _register(client)
    r = await client.post(
        "/api/v1/auth/login", json={"email": "dana@example.com", "password": "s3cret-pass"}
    )
    assert r.status_code == 200
    token = r.json()["access_token"]

    r = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json()["name"] == "Dana"


@pytest.mark.asyncio
async def test_login_wrong_password(client):
    await _register(client)
    r = await client.post(
        "/api/v1/auth/login", json={"email": "dana@example.com", "password": "nope-nope"}
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_refresh_issues_new_pair(client):
    tokens = (await _register(client)).json()
    r = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert r.status_code == 200
    assert verify_token(r.json()["access_token"])["sub"] == tokens["user"]["id"]


@pytest.mark.asyncio
async def test_refresh_rejects_access_token(client):
    tokens = (await _register(client)).json()
    r = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_protected_route_requires_token(client):
    r = await client.get("/api/v1/events")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_protected_route_rejects_bad_token(client):
    r = await client.get("/api/v1/events", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401
