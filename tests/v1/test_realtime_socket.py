# tests/v1/test_realtime_socket.py
"""Tests for the realtime socket endpoint."""

import pytest
from starlette.websockets import WebSocketDisconnect

from hookrelay.api.realtime import CLOSE_UNAUTHENTICATED
from hookrelay.core.security import create_session_token
from hookrelay.services.gateway import SendThrottle
from hookrelay.services.sessions import upsert_session
from tests.fakes import make_message


def _join(ws, channel_id: str = "c1", ack: int = 1) -> dict:
    ws.send_json({"event": "channel:join", "data": {"channelId": channel_id}, "ack": ack})
    return ws.receive_json()


def test_socket_without_token_is_closed(client, live_bot) -> None:
    with client.websocket_connect("/ws") as ws:
        with pytest.raises(WebSocketDisconnect) as info:
            ws.receive_json()

    assert info.value.code == CLOSE_UNAUTHENTICATED


def test_socket_with_unknown_session_is_closed(client, live_bot) -> None:
    token = create_session_token("ghost")

    with client.websocket_connect(f"/ws?token={token}") as ws:
        with pytest.raises(WebSocketDisconnect) as info:
            ws.receive_json()

    assert info.value.code == CLOSE_UNAUTHENTICATED


def test_join_is_acknowledged(client, auth_token, live_bot, runtime) -> None:
    with client.websocket_connect(f"/ws?token={auth_token}") as ws:
        assert _join(ws) == {"ack": 1, "success": True}
        assert runtime.hub.rooms() == ["channel:c1"]


def test_cookie_authenticates_socket(client, auth_token, live_bot) -> None:
    with client.websocket_connect("/ws", headers={"cookie": f"token={auth_token}"}) as ws:
        assert _join(ws)["success"] is True


def test_restricted_join_is_refused(client, auth_token, live_bot) -> None:
    with client.websocket_connect(f"/ws?token={auth_token}") as ws:
        assert _join(ws, "c2", ack=5) == {
            "ack": 5,
            "error": "Age verification required",
            "code": "RestrictedContentGate",
        }


def test_send_is_acknowledged_with_message(client, auth_token, live_bot) -> None:
    with client.websocket_connect(f"/ws?token={auth_token}") as ws:
        ws.send_json(
            {"event": "message:send", "data": {"channelId": "c1", "content": "hi all"}, "ack": 2}
        )
        ack = ws.receive_json()

    assert ack["ack"] == 2
    assert ack["success"] is True
    assert ack["message"]["content"] == "hi all"
    assert ack["message"]["isWebhook"] is True
    assert ack["message"]["webhookSenderId"] == "u1"
    assert ack["messageId"] == ack["message"]["id"]
    webhook, post = live_bot.sent[0]
    assert post.username == "Alice"
    assert webhook.channel_id == "c1"


def test_send_rate_limit(client, auth_token, live_bot, runtime) -> None:
    runtime.gateway.throttle = SendThrottle(limit=1, window=60)

    with client.websocket_connect(f"/ws?token={auth_token}") as ws:
        for ack in (1, 2):
            ws.send_json(
                {"event": "message:send", "data": {"channelId": "c1", "content": "x"}, "ack": ack}
            )
        acks = {frame["ack"]: frame for frame in (ws.receive_json(), ws.receive_json())}

    assert acks[1]["success"] is True
    assert acks[2]["code"] == "RateLimited"
    assert len(live_bot.sent) == 1


def test_upstream_messages_are_broadcast_to_room(client, auth_token, live_bot) -> None:
    with client.websocket_connect(f"/ws?token={auth_token}") as ws:
        _join(ws)
        client.portal.call(
            live_bot.emit,
            "message_create",
            make_message(message_id="m9", author_id="u2", author_name="bob", content="yo"),
        )
        frame = ws.receive_json()

    assert frame["event"] == "message:create"
    assert frame["data"]["id"] == "m9"
    assert frame["data"]["authorUsername"] == "bob"
    assert frame["data"]["content"] == "yo"


def test_typing_reaches_other_subscribers(client, db_session, auth_token, live_bot) -> None:
    upsert_session(db_session, user_id="u2", username="bob")
    live_bot.add_member("g1", "u2", "bob")
    bob_token = create_session_token("u2", "bob")

    with client.websocket_connect(f"/ws?token={auth_token}") as alice:
        with client.websocket_connect(f"/ws?token={bob_token}") as bob:
            _join(alice)
            _join(bob)
            alice.send_json({"event": "typing:start", "data": {"channelId": "c1"}})
            frame = bob.receive_json()

    assert frame == {
        "event": "typing:start",
        "data": {"channelId": "c1", "userId": "u1", "username": "alice", "avatar": "abc123"},
    }


def test_malformed_frame(client, auth_token, live_bot) -> None:
    with client.websocket_connect(f"/ws?token={auth_token}") as ws:
        ws.send_text("not json")
        assert ws.receive_json() == {"error": "Malformed frame", "code": "ValidationFailed"}
        assert _join(ws)["success"] is True
