"""Tests for middleware — security headers, request IDs, rate limiting.

Learn: The client fixture puts a fakeredis-backed ChannelStore on
app.state, so the rate limiter is live here with its real counters.
"""

import pytest

from connectsphere.middleware.rate_limit import RateLimitMiddleware


@pytest.mark.asyncio
async def test_security_headers_on_health(client):
    """Health endpoint returns security headers."""
    r = await client.get("/api/v1/health")
    assert r.status_code == 200
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
    assert "Cache-Control" not in r.headers


@pytest.mark.asyncio
async def test_auth_responses_are_not_cached(client):
    r = await client.post("/api/v1/auth/login", json={"email": "x@example.com", "password": "y"})
    assert r.headers["Cache-Control"] == "no-store"


@pytest.mark.asyncio
async def test_request_id_generated(client):
    """Each request gets a unique X-Request-ID header."""
    r1 = await client.get("/api/v1/health")
    r2 = await client.get("/api/v1/health")
    assert "X-Request-ID" in r1.headers
    assert "X-Request-ID" in r2.headers
    assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_propagated(client):
    """Incoming X-Request-ID is propagated through the response."""
    custom_id = "test-trace-12345"
    r = await client.get("/api/v1/health", headers={"X-Request-ID": custom_id})
    assert r.headers["X-Request-ID"] == custom_id


@pytest.mark.asyncio
async def test_no_hsts_on_http(client):
    """HSTS header is NOT set on HTTP connections (only HTTPS)."""
    r = await client.get("/api/v1/health")
    assert "Strict-Transport-Security" not in r.headers


@pytest.mark.asyncio
async def test_rate_limit_headers(client):
    r = await client.get("/api/v1/health")
    assert r.headers["X-RateLimit-Limit"] == "120"
    assert r.headers["X-RateLimit-Remaining"] == "119"


@pytest.mark.asyncio
async def test_auth_bucket_is_stricter(client):
    for _ in range(10):
        r = await client.post("/api/v1/auth/login", json={"email": "x@example.com", "password": "y"})
        assert r.status_code == 401
    r = await client.post("/api/v1/auth/login", json={"email": "x@example.com", "password": "y"})
    assert r.status_code == 429
    assert r.headers["Retry-After"] == "60"

    # The general bucket is separate.
    assert (await client.get("/api/v1/health")).status_code == 200


@pytest.mark.asyncio
async def test_rate_limit_store_failure_lets_requests_through(client, store, monkeypatch):
    async def broken_incr(key, ttl=None):
        raise ConnectionError("redis down")

    monkeypatch.setattr(store, "incr", broken_incr)
    r = await client.get("/api/v1/health")
    assert r.status_code == 200
    assert "X-RateLimit-Limit" not in r.headers


def test_rate_limit_defaults():
    middleware = RateLimitMiddleware(app=None)
    assert middleware.default_rpm == 120
    assert middleware.auth_rpm == 10
