# tests/v1/test_channel_endpoints.py
"""Tests for channel history and send-capability endpoints."""

import pytest
from fastapi import status

from hookrelay.core.security import create_session_token
from hookrelay.services.sessions import upsert_session
from hookrelay.services.upstream import ChannelPermissions
from tests.fakes import make_message


@pytest.fixture
def history(live_bot):
    for message_id in ("m1", "m2", "m3"):
        live_bot.messages["c1"].append(make_message(message_id=message_id, content=message_id))
    return live_bot


@pytest.fixture
def outsider_headers(db_session) -> dict[str, str]:
    upsert_session(db_session, user_id="u9", username="mallory")
    return {"Authorization": f"Bearer {create_session_token('u9')}"}


def test_messages_oldest_first(client, auth_headers, history) -> None:
    response = client.get("/api/channels/c1/messages", headers=auth_headers)

    assert response.status_code == status.HTTP_200_OK
    messages = response.json()
    assert [message["id"] for message in messages] == ["m1", "m2", "m3"]
    assert messages[0]["authorUsername"] == "alice"
    assert messages[0]["channelId"] == "c1"


def test_messages_limit_returns_newest_page(client, auth_headers, history) -> None:
    response = client.get("/api/channels/c1/messages?limit=2", headers=auth_headers)

    assert [message["id"] for message in response.json()] == ["m2", "m3"]


def test_messages_before_cursor(client, auth_headers, history) -> None:
    response = client.get("/api/channels/c1/messages?before=m3", headers=auth_headers)

    assert [message["id"] for message in response.json()] == ["m1", "m2"]


def test_messages_limit_must_be_positive(client, auth_headers, history) -> None:
    response = client.get("/api/channels/c1/messages?limit=0", headers=auth_headers)

    assert response.status_code == 422


def test_messages_unknown_channel(client, auth_headers, live_bot) -> None:
    response = client.get("/api/channels/nope/messages", headers=auth_headers)

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_messages_require_membership(client, outsider_headers, history) -> None:
    response = client.get("/api/channels/c1/messages", headers=outsider_headers)

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_messages_require_history_right(client, auth_headers, history) -> None:
    history.user_rights[("c1", "u1")] = ChannelPermissions(view_channel=True, send_messages=True)

    response = client.get("/api/channels/c1/messages", headers=auth_headers)

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_restricted_history_needs_age_verification(client, auth_headers, live_bot) -> None:
    response = client.get("/api/channels/c2/messages", headers=auth_headers)

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["detail"] == {
        "error": "Age verification required",
        "code": "RestrictedContentGate",
    }


def test_restricted_history_after_verification(
    client, verified_user, auth_headers, live_bot
) -> None:
    live_bot.messages["c2"].append(make_message(message_id="n1", channel_id="c2"))

    response = client.get("/api/channels/c2/messages", headers=auth_headers)

    assert response.status_code == status.HTTP_200_OK
    assert [message["id"] for message in response.json()] == ["n1"]


def test_can_send(client, auth_headers, live_bot) -> None:
    assert client.get("/api/channels/c1/can-send", headers=auth_headers).json() == {
        "canSend": True,
        "nsfw": False,
    }
    assert client.get("/api/channels/c2/can-send", headers=auth_headers).json() == {
        "canSend": True,
        "nsfw": True,
    }


def test_cannot_send_without_bot_webhook_right(client, auth_headers, live_bot) -> None:
    live_bot.self_rights["c1"] = ChannelPermissions(view_channel=True, send_messages=True)

    response = client.get("/api/channels/c1/can-send", headers=auth_headers)

    assert response.json()["canSend"] is False


def test_cannot_send_without_user_send_right(client, auth_headers, live_bot) -> None:
    live_bot.user_rights[("c1", "u1")] = ChannelPermissions(view_channel=True)

    response = client.get("/api/channels/c1/can-send", headers=auth_headers)

    assert response.json()["canSend"] is False


def test_outsider_cannot_send(client, outsider_headers, live_bot) -> None:
    response = client.get("/api/channels/c1/can-send", headers=outsider_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["canSend"] is False


def test_can_send_unknown_channel(client, auth_headers, live_bot) -> None:
    response = client.get("/api/channels/nope/can-send", headers=auth_headers)

    assert response.status_code == status.HTTP_404_NOT_FOUND
