# src/hookrelay/services/proxy_endpoints.py
"""Per-channel proxy webhooks.

Browser users post into a channel through a webhook the bot owns, under their
own display name and avatar. One webhook per channel is reused forever; its id
and token are persisted in ``webhook_cache`` and revalidated before use.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from sqlalchemy.orm import Session

from hookrelay.core.errors import InsufficientPermission, NotFound, UpstreamUnavailable
from hookrelay.core.settings import settings
from hookrelay.models import WebhookRecord
from hookrelay.schemas.message import RelayMessage
from hookrelay.services.delivery_queue import DeliveryQueue
from hookrelay.services.registry import ConnectionRegistry
from hookrelay.services.relay import shape_message
from hookrelay.services.rooms import SubscriberIdentity
from hookrelay.services.upstream import (
    Channel,
    OutboundFile,
    UpstreamConnection,
    Webhook,
    WebhookPost,
    avatar_url,
)

logger = logging.getLogger(__name__)


class ProxyEndpointManager:
    """Resolves, creates and persists the webhook used to post into a channel."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        delivery_queue: DeliveryQueue,
        session_factory: Callable[[], Session],
        *,
        webhook_name: str | None = None,
    ) -> None:
        self._registry = registry
        self._queue = delivery_queue
        self._session_factory = session_factory
        self.webhook_name = webhook_name or settings.webhook_name

    def _connection_for(self, channel: Channel) -> UpstreamConnection:
        connection = self._registry.owner_of(channel)
        if connection is None:
            raise NotFound("Channel not found")
        return connection

    def _load_record(self, channel_id: str) -> WebhookRecord | None:
        with self._session_factory() as db:
            record = db.get(WebhookRecord, channel_id)
            if record is not None:
                db.expunge(record)
            return record

    def _save_record(self, webhook: Webhook) -> None:
        with self._session_factory() as db:
            record = db.get(WebhookRecord, webhook.channel_id)
            if record is None:
                db.add(
                    WebhookRecord(
                        channel_id=webhook.channel_id,
                        webhook_id=webhook.id,
                        webhook_token=webhook.token,
                    )
                )
            else:
                record.webhook_id = webhook.id
                record.webhook_token = webhook.token
            db.commit()

    def forget(self, channel_id: str) -> None:
        """Drop the persisted webhook of a channel so the next send recreates it."""
        with self._session_factory() as db:
            record = db.get(WebhookRecord, channel_id)
            if record is not None:
                webhook_id = record.webhook_id
                db.delete(record)
                db.commit()
                logger.info("Forgot webhook %s for channel %s", webhook_id, channel_id)

    async def get_or_create(self, channel: Channel) -> Webhook:
        """Return a working webhook for ``channel``, creating one if needed.

        Raises:
            InsufficientPermission: If a webhook must be created and the bot
                may not manage webhooks in the channel.
            UpstreamUnavailable: If the platform fails while listing or creating.
        """
        connection = self._connection_for(channel)

        record = self._load_record(channel.id)
        if record is not None:
            try:
                existing = await connection.fetch_webhook(record.webhook_id)
            except UpstreamUnavailable as exc:
                logger.warning("Revalidating webhook for channel %s failed: %s", channel.id, exc)
                existing = None
            if existing is not None and existing.channel_id == channel.id:
                # The fetched object may come back without its token.
                return Webhook(
                    id=existing.id,
                    token=existing.token or record.webhook_token,
                    channel_id=channel.id,
                    name=existing.name,
                    owner_id=existing.owner_id,
                )
            logger.info("Cached webhook for channel %s is gone; replacing it", channel.id)

        if not connection.permissions_for_self(channel).manage_webhooks:
            raise InsufficientPermission()

        webhook = None
        for candidate in await connection.channel_webhooks(channel.id):
            if (
                candidate.name == self.webhook_name
                and candidate.owner_id == connection.identity_id
                and candidate.token
            ):
                webhook = candidate
                break
        if webhook is None:
            webhook = await connection.create_webhook(channel.id, self.webhook_name)
            logger.info("Created proxy webhook %s in channel %s", webhook.id, channel.id)

        self._save_record(webhook)
        return webhook

    async def send_as_user(
        self,
        channel: Channel,
        user: SubscriberIdentity,
        content: str,
        files: Sequence[OutboundFile] = (),
        reply_to: str | None = None,
    ) -> RelayMessage:
        """Post ``content`` into ``channel`` as ``user`` through the channel's queue.

        ``reply_to`` is only carried for logging; quoting is composed by the caller.
        """
        post = WebhookPost(
            content=content or None,
            username=user.display_name,
            avatar_url=avatar_url(user.id, user.avatar),
            files=tuple(files),
        )

        async def deliver() -> RelayMessage:
            webhook = await self.get_or_create(channel)
            connection = self._connection_for(channel)
            try:
                sent = await connection.send_via_webhook(webhook, post)
            except NotFound:
                # Deleted after revalidation; replace it and post once more
                logger.info(
                    "Webhook %s in channel %s vanished; recreating", webhook.id, channel.id
                )
                self.forget(channel.id)
                webhook = await self.get_or_create(channel)
                try:
                    sent = await connection.send_via_webhook(webhook, post)
                except NotFound as exc:
                    self.forget(channel.id)
                    raise UpstreamUnavailable("Webhook vanished twice during send") from exc
            shaped = shape_message(sent, webhook_sender_id=user.id)
            if shaped is None:
                raise UpstreamUnavailable("Upstream returned an unreadable message")
            return shaped

        logger.debug(
            "Queueing send by %s into channel %s (reply_to=%s)", user.id, channel.id, reply_to
        )
        return await self._queue.enqueue(channel.id, deliver)
