# tests/v1/test_admin_endpoints.py
"""Tests for the bot administration endpoints."""

import pytest
from fastapi import status

from hookrelay.api.v1.endpoints.admin import get_credential_identifier
from hookrelay.core.errors import Unauthenticated
from hookrelay.core.security import create_session_token
from hookrelay.core.settings import settings
from hookrelay.services.bots import get_registered_bot
from hookrelay.services.sessions import upsert_session


async def fake_identify(token: str) -> tuple[str, str]:
    if token == "bad-token":
        raise Unauthenticated("Invalid bot token")
    return "bot2", "Helper#0002"


@pytest.fixture
def admin(app, monkeypatch, upstream, live_bot):
    monkeypatch.setattr(settings, "admin_user_id", "u1")
    monkeypatch.setattr(settings, "discord_client_id", "bot1")
    app.dependency_overrides[get_credential_identifier] = lambda: fake_identify
    helper = upstream.prepare("bot2", display_name="Helper#0002")
    helper.add_guild("g7", "Helper Guild")
    return helper


def test_admin_not_configured(client, auth_headers, live_bot) -> None:
    response = client.get("/api/admin/bots", headers=auth_headers)

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["detail"]["error"] == "Admin not configured"


def test_non_admin_is_rejected(client, db_session, admin) -> None:
    upsert_session(db_session, user_id="u2", username="bob")
    headers = {"Authorization": f"Bearer {create_session_token('u2')}"}

    response = client.get("/api/admin/bots", headers=headers)

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["detail"]["error"] == "Forbidden"


def test_list_excludes_primary_bot(client, auth_headers, admin) -> None:
    response = client.get("/api/admin/bots", headers=auth_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == []


def test_add_bot(client, auth_headers, admin, runtime, session_factory) -> None:
    response = client.post("/api/admin/bots", json={"token": "tok-2"}, headers=auth_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"botId": "bot2", "name": "Helper#0002", "guildCount": 1}
    assert "bot2" in runtime.registry
    assert admin.credential == "tok-2"
    with session_factory() as db:
        record = get_registered_bot(db, "bot2")
        assert record.bot_token == "tok-2"
        assert record.added_by == "u1"

    listed = client.get("/api/admin/bots", headers=auth_headers).json()
    assert listed == [{"botId": "bot2", "name": "Helper#0002", "guildCount": 1}]


def test_add_bot_twice_conflicts(client, auth_headers, admin) -> None:
    client.post("/api/admin/bots", json={"token": "tok-2"}, headers=auth_headers)

    response = client.post("/api/admin/bots", json={"token": "tok-2"}, headers=auth_headers)

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["detail"]["code"] == "DuplicateRegistration"


def test_add_bot_with_bad_token(client, auth_headers, admin, runtime) -> None:
    response = client.post("/api/admin/bots", json={"token": "bad-token"}, headers=auth_headers)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"]["error"] == "Failed to add bot"
    assert "bot2" not in runtime.registry


def test_add_bot_requires_token(client, auth_headers, admin) -> None:
    response = client.post("/api/admin/bots", json={"token": "  "}, headers=auth_headers)

    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_remove_bot(client, auth_headers, admin, runtime, session_factory) -> None:
    client.post("/api/admin/bots", json={"token": "tok-2"}, headers=auth_headers)

    response = client.delete("/api/admin/bots/bot2", headers=auth_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"success": True}
    assert "bot2" not in runtime.registry
    assert admin.closed is True
    with session_factory() as db:
        assert get_registered_bot(db, "bot2") is None


def test_primary_bot_cannot_be_removed(client, auth_headers, admin, runtime) -> None:
    response = client.delete("/api/admin/bots/bot1", headers=auth_headers)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "bot1" in runtime.registry


def test_remove_unknown_bot(client, auth_headers, admin) -> None:
    response = client.delete("/api/admin/bots/bot9", headers=auth_headers)

    assert response.status_code == status.HTTP_404_NOT_FOUND
