# tests/v1/test_auth_endpoints.py
"""Tests for the session endpoints."""

from fastapi import status

from hookrelay.core.security import create_session_token
from hookrelay.services.sessions import get_session_record


def test_me_returns_profile(client, auth_headers) -> None:
    response = client.get("/api/auth/me", headers=auth_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "id": "u1",
        "username": "alice",
        "discriminator": None,
        "avatar": "abc123",
        "globalName": "Alice",
        "ageVerified": False,
    }


def test_me_requires_a_token(client) -> None:
    response = client.get("/api/auth/me")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["detail"] == {"error": "Not authenticated", "code": "Unauthenticated"}


def test_me_rejects_a_forged_token(client, test_user) -> None:
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["detail"]["error"] == "Invalid token"


def test_me_rejects_token_without_session(client) -> None:
    token = create_session_token("ghost", "ghost")

    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["detail"]["error"] == "Session not found"


def test_me_accepts_session_cookie(client, auth_token) -> None:
    client.cookies.set("token", auth_token)

    response = client.get("/api/auth/me")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["id"] == "u1"


def test_age_verify_persists(client, auth_headers, session_factory) -> None:
    response = client.post("/api/auth/age-verify", headers=auth_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"success": True}
    with session_factory() as db:
        assert get_session_record(db, "u1").age_verified is True
    assert client.get("/api/auth/me", headers=auth_headers).json()["ageVerified"] is True


def test_age_verify_requires_auth(client) -> None:
    response = client.post("/api/auth/age-verify")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_logout_clears_cookie(client) -> None:
    response = client.post("/api/auth/logout")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"success": True}
    assert response.headers["set-cookie"].startswith("token=")
