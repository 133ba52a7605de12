# tests/services/test_proxy_endpoints.py
"""Tests for per-channel proxy webhook management."""

from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio

from hookrelay.core.errors import InsufficientPermission, NotFound, UpstreamUnavailable
from hookrelay.models import WebhookRecord
from hookrelay.services.delivery_queue import DeliveryQueue
from hookrelay.services.member_cache import MemberCache
from hookrelay.services.proxy_endpoints import ProxyEndpointManager
from hookrelay.services.registry import ConnectionRegistry
from hookrelay.services.rooms import SubscriberIdentity
from hookrelay.services.upstream import ChannelPermissions, OutboundFile, Webhook
from tests.fakes import FakeUpstream


@pytest.fixture
def fakes() -> FakeUpstream:
    upstream = FakeUpstream()
    connection = upstream.prepare("bot1")
    connection.add_guild("g1")
    connection.add_channel("c1", "g1")
    connection.add_channel("c2", "g1")
    return upstream


@pytest.fixture
def connection(fakes):
    return fakes.connections["bot1"]


@pytest_asyncio.fixture
async def manager(fakes, session_factory):
    registry = ConnectionRegistry(fakes, MemberCache())
    await registry.add("bot1", "token")
    queue = DeliveryQueue(spacing=0.01, idle_timeout=1)
    yield ProxyEndpointManager(registry, queue, session_factory, webhook_name="Relay Hook")
    await queue.close()


@pytest.fixture
def alice() -> SubscriberIdentity:
    return SubscriberIdentity(id="175928847299117063", username="alice", global_name="Alice")


def _stored(session_factory, channel_id: str) -> WebhookRecord | None:
    with session_factory() as db:
        return db.get(WebhookRecord, channel_id)


@pytest.mark.asyncio
async def test_creates_and_persists_endpoint(manager, connection, session_factory) -> None:
    webhook = await manager.get_or_create(connection.get_channel("c1"))

    assert connection.created_webhooks == [webhook]
    record = _stored(session_factory, "c1")
    assert record.webhook_id == webhook.id
    assert record.webhook_token == webhook.token


@pytest.mark.asyncio
async def test_cached_endpoint_is_reused(manager, connection) -> None:
    channel = connection.get_channel("c1")
    first = await manager.get_or_create(channel)
    second = await manager.get_or_create(channel)

    assert first.id == second.id
    assert len(connection.created_webhooks) == 1


@pytest.mark.asyncio
async def test_adopts_existing_relay_webhook(manager, connection, session_factory) -> None:
    existing = Webhook(
        id="old", token="tok", channel_id="c1", name="Relay Hook", owner_id=connection.identity_id
    )
    foreign = Webhook(id="theirs", token="t2", channel_id="c1", name="Relay Hook", owner_id="other")
    connection.webhooks.update({"theirs": foreign, "old": existing})

    webhook = await manager.get_or_create(connection.get_channel("c1"))

    assert webhook.id == "old"
    assert connection.created_webhooks == []
    assert _stored(session_factory, "c1").webhook_id == "old"


@pytest.mark.asyncio
async def test_stale_record_is_replaced(manager, connection, session_factory) -> None:
    channel = connection.get_channel("c1")
    first = await manager.get_or_create(channel)
    del connection.webhooks[first.id]

    replacement = await manager.get_or_create(channel)

    assert replacement.id != first.id
    assert _stored(session_factory, "c1").webhook_id == replacement.id


@pytest.mark.asyncio
async def test_record_for_other_channel_is_not_trusted(manager, connection, session_factory) -> None:
    moved = await manager.get_or_create(connection.get_channel("c2"))
    with session_factory() as db:
        db.add(WebhookRecord(channel_id="c1", webhook_id=moved.id, webhook_token=moved.token))
        db.commit()

    webhook = await manager.get_or_create(connection.get_channel("c1"))

    assert webhook.channel_id == "c1"
    assert webhook.id != moved.id


@pytest.mark.asyncio
async def test_missing_manage_right_is_reported(manager, connection, session_factory) -> None:
    connection.self_rights["c1"] = ChannelPermissions(view_channel=True, send_messages=True)

    with pytest.raises(InsufficientPermission):
        await manager.get_or_create(connection.get_channel("c1"))
    assert _stored(session_factory, "c1") is None


@pytest.mark.asyncio
async def test_send_as_user_posts_under_user_identity(manager, connection, alice) -> None:
    files = [OutboundFile(filename="a.txt", data=b"abc", content_type="text/plain")]

    message = await manager.send_as_user(connection.get_channel("c1"), alice, "hello", files)

    webhook, post = connection.sent[0]
    assert post.username == "Alice"
    assert post.avatar_url == "https://cdn.discordapp.com/embed/avatars/2.png"
    assert post.content == "hello"
    assert post.files[0].data == b"abc"
    assert message.content == "hello"
    assert message.is_webhook is True
    assert message.webhook_sender_id == alice.id


@pytest.mark.asyncio
async def test_custom_avatar_is_used(manager, connection) -> None:
    user = SubscriberIdentity(id="u1", username="bob", avatar="hash")

    await manager.send_as_user(connection.get_channel("c1"), user, "hi")

    _webhook, post = connection.sent[0]
    assert post.username == "bob"
    assert post.avatar_url == "https://cdn.discordapp.com/avatars/u1/hash.png"


@pytest.mark.asyncio
async def test_endpoint_deleted_before_post_is_replaced(
    manager, connection, alice, session_factory, monkeypatch
) -> None:
    channel = connection.get_channel("c1")
    first = await manager.get_or_create(channel)
    original_send = connection.send_via_webhook
    attempts = []

    async def delete_then_send(webhook, post):
        attempts.append(webhook.id)
        if len(attempts) == 1:
            del connection.webhooks[webhook.id]
            raise NotFound("Unknown Webhook")
        return await original_send(webhook, post)

    monkeypatch.setattr(connection, "send_via_webhook", delete_then_send)

    message = await manager.send_as_user(channel, alice, "hello")

    assert message.content == "hello"
    assert attempts[0] == first.id
    assert attempts[1] != first.id
    assert _stored(session_factory, "c1").webhook_id == attempts[1]
    assert len(connection.created_webhooks) == 2


@pytest.mark.asyncio
async def test_endpoint_vanishing_twice_fails_the_send(
    manager, connection, alice, session_factory
) -> None:
    connection.send_errors.extend([NotFound("Unknown Webhook"), NotFound("Unknown Webhook")])

    with pytest.raises(UpstreamUnavailable):
        await manager.send_as_user(connection.get_channel("c1"), alice, "hello")
    assert _stored(session_factory, "c1") is None

    await manager.send_as_user(connection.get_channel("c1"), alice, "again")
    assert connection.sent[-1][1].content == "again"



@pytest.mark.asyncio
async def test_sends_in_one_channel_keep_order(manager, connection, alice) -> None:
    connection.send_delay = 0.01
    channel = connection.get_channel("c1")

    await asyncio.gather(
        *(manager.send_as_user(channel, alice, f"msg {i}") for i in range(3))
    )

    assert [post.content for _webhook, post in connection.sent] == ["msg 0", "msg 1", "msg 2"]
    assert len(connection.created_webhooks) == 1
