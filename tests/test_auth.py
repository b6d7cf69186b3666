"""Authentication and authorization tests.

Tests password hashing, JWT creation and verification, operator login,
token refresh, protected endpoints, shared-secret matching and the
request-id header added by the logging middleware.
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch

import pytest
import pytest_asyncio
from fastapi import FastAPI, HTTPException
from httpx import ASGITransport, AsyncClient
from jose import jwt

from src.app.api.middleware.logging import LoggingMiddleware
from src.app.api.v1 import auth
from src.app.config import Settings, get_settings
from src.app.core.security import (
    bearer_token,
    create_access_token,
    create_refresh_token,
    hash_password,
    match_api_key,
    verify_password,
    verify_token,
)

OPERATOR_EMAIL = "owner@example.com"
OPERATOR_PASSWORD = "correct horse battery staple"


@pytest.fixture(scope="module")
def operator_settings() -> Settings:
    return Settings(
        OPERATOR_EMAIL=OPERATOR_EMAIL,
        OPERATOR_PASSWORD_HASH=hash_password(OPERATOR_PASSWORD),
    )


@pytest_asyncio.fixture
async def client(operator_settings):
    app = FastAPI()
    app.add_middleware(LoggingMiddleware)
    app.include_router(auth.router, prefix="/api/v1")

    with patch("src.app.api.v1.auth.get_settings", return_value=operator_settings):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            yield c


# ── Security Primitives ───────────────────────────────────────────────────────


def test_password_hash_roundtrip():
    hashed = hash_password("s3cret")
    assert hashed != "s3cret"
    assert verify_password("s3cret", hashed) is True
    assert verify_password("wrong", hashed) is False


def test_verify_password_malformed_hash():
    assert verify_password("s3cret", "not-a-bcrypt-hash") is False


def test_access_token_claims():
    token = create_access_token({"sub": OPERATOR_EMAIL, "role": "operator"})
    payload = verify_token(token, token_type="access")
    assert payload["sub"] == OPERATOR_EMAIL
    assert payload["type"] == "access"


def test_refresh_token_rejected_as_access():
    token = create_refresh_token({"sub": OPERATOR_EMAIL})
    with pytest.raises(HTTPException) as exc_info:
        verify_token(token, token_type="access")
    assert exc_info.value.status_code == 401


def test_expired_token_rejected():
    token = create_access_token({"sub": OPERATOR_EMAIL}, expires_delta=timedelta(seconds=-1))
    with pytest.raises(HTTPException):
        verify_token(token)


def test_bearer_token_parsing():
    assert bearer_token("Bearer abc") == "abc"
    assert bearer_token("Basic abc") is None
    assert bearer_token("Bearer   ") is None
    assert bearer_token(None) is None


def test_match_api_key():
    keys = {"key-a": "askconciergeai", "key-b": "zapier"}
    assert match_api_key("key-b", keys) == "zapier"
    assert match_api_key("key-c", keys) is None
    assert match_api_key(None, keys) is None


# ── Login Tests ───────────────────────────────────────────────────────────────


async def test_login_valid_credentials(client):
    """Login with the configured operator returns JWT tokens."""
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "Owner@Example.com", "password": OPERATOR_PASSWORD},
    )
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["token_type"] == "bearer"

    settings = get_settings()
    payload = jwt.decode(
        data["access_token"],
        settings.JWT_SECRET_KEY,
        algorithms=[settings.JWT_ALGORITHM],
    )
    assert payload["sub"] == OPERATOR_EMAIL
    assert payload["role"] == "operator"
    assert payload["type"] == "access"


async def test_login_invalid_password(client):
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": OPERATOR_EMAIL, "password": "wrong-password"},
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


async def test_login_unknown_email(client):
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "nobody@example.com", "password": OPERATOR_PASSWORD},
    )
    assert response.status_code == 401


async def test_login_without_configured_operator():
    """No OPERATOR_EMAIL configured -> every login fails."""
    app = FastAPI()
    app.include_router(auth.router, prefix="/api/v1")
    with patch("src.app.api.v1.auth.get_settings", return_value=Settings(OPERATOR_EMAIL="")):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            response = await c.post(
                "/api/v1/auth/login",
                json={"email": OPERATOR_EMAIL, "password": OPERATOR_PASSWORD},
            )
    assert response.status_code == 401


# ── Protected Endpoint Tests ──────────────────────────────────────────────────


async def test_me_with_valid_token(client):
    token = create_access_token({"sub": OPERATOR_EMAIL, "role": "operator"})
    response = await client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 200
    assert response.json() == {"email": OPERATOR_EMAIL, "role": "operator"}


async def test_me_without_token(client):
    response = await client.get("/api/v1/auth/me")
    assert response.status_code == 401


async def test_me_with_refresh_token(client):
    token = create_refresh_token({"sub": OPERATOR_EMAIL})
    response = await client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 401


# ── Refresh Tests ─────────────────────────────────────────────────────────────


async def test_token_refresh(client):
    refresh = create_refresh_token({"sub": OPERATOR_EMAIL, "role": "operator"})
    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh})
    assert response.status_code == 200
    data = response.json()
    assert verify_token(data["access_token"])["sub"] == OPERATOR_EMAIL


async def test_token_refresh_for_removed_operator(client):
    refresh = create_refresh_token({"sub": "former@example.com"})
    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh})
    assert response.status_code == 401
    assert response.json()["detail"] == "Operator not found"


async def test_token_refresh_rejects_access_token(client):
    access = create_access_token({"sub": OPERATOR_EMAIL})
    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": access})
    assert response.status_code == 401


# ── Middleware ────────────────────────────────────────────────────────────────


async def test_response_has_request_id(client):
    response = await client.get("/api/v1/auth/me")
    assert "X-Request-ID" in response.headers
