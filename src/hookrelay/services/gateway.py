# src/hookrelay/services/gateway.py
"""Subscription gateway: the per-subscriber realtime state machine.

A subscriber is authenticated before it reaches this module. From then on it is
either idle or in exactly one channel room. Every join and every send is
authorised from scratch; having joined a channel grants nothing by itself.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ValidationError

from hookrelay.core.errors import (
    Forbidden,
    NotFound,
    RateLimited,
    RelayError,
    RestrictedContentGate,
    ValidationFailed,
)
from hookrelay.core.settings import settings
from hookrelay.schemas.message import TypingPayload
from hookrelay.schemas.realtime import ChannelRequest, ClientFrame, SendRequest
from hookrelay.services.proxy_endpoints import ProxyEndpointManager
from hookrelay.services.registry import ConnectionRegistry
from hookrelay.services.relay import shape_message
from hookrelay.services.rooms import RoomHub, Subscriber, room_for
from hookrelay.services.upstream import Channel, OutboundFile, UpstreamConnection

logger = logging.getLogger(__name__)

QUOTE_LENGTH = 100
MAX_CONTENT_LENGTH = 2000

Handler = Callable[[Subscriber, dict[str, Any]], Awaitable[dict[str, Any]]]


class SendThrottle:
    """Sliding-window limit on how often one subscriber may send."""

    def __init__(
        self,
        *,
        limit: int | None = None,
        window: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = settings.send_rate_limit if limit is None else limit
        self.window = settings.send_rate_window_seconds if window is None else window
        self._clock = clock

    def check(self, send_times: deque[float]) -> None:
        """Record a send in ``send_times`` or raise ``RateLimited``.

        Rejected attempts are not recorded.
        """
        now = self._clock()
        while send_times and now - send_times[0] >= self.window:
            send_times.popleft()
        if len(send_times) >= self.limit:
            raise RateLimited()
        send_times.append(now)


def _parse(model: type[BaseModel], data: dict[str, Any]) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationFailed(f"Invalid {field or 'payload'}") from exc


class SubscriptionGateway:
    """Join, leave, send and typing for realtime subscribers."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        hub: RoomHub,
        proxy: ProxyEndpointManager,
        *,
        throttle: SendThrottle | None = None,
        reply_timeout: float | None = None,
        max_upload_bytes: int | None = None,
    ) -> None:
        self._registry = registry
        self._hub = hub
        self._proxy = proxy
        self.throttle = throttle or SendThrottle()
        self.reply_timeout = (
            settings.reply_lookup_timeout_seconds if reply_timeout is None else reply_timeout
        )
        self.max_upload_bytes = (
            settings.max_upload_bytes if max_upload_bytes is None else max_upload_bytes
        )
        self._handlers: dict[str, Handler] = {
            "channel:join": self._on_join,
            "channel:leave": self._on_leave,
            "message:send": self._on_send,
            "typing:start": self._on_typing,
        }

    @property
    def hub(self) -> RoomHub:
        return self._hub

    async def authorize(
        self, subscriber: Subscriber, channel_id: str, *, send: bool = False
    ) -> tuple[Channel, UpstreamConnection]:
        """Check that ``subscriber`` may view (and optionally post in) a channel.

        Raises:
            NotFound: If no connection can see the channel.
            Forbidden: If the bot or the user lacks the required rights.
            RestrictedContentGate: If the channel is age restricted and the
                user has not verified their age.
        """
        channel = self._registry.find_channel(channel_id)
        if channel is None:
            raise NotFound("Channel not found")
        connection = self._registry.owner_of(channel)
        if connection is None:
            raise NotFound("Channel not found")

        if not connection.permissions_for_self(channel).view_channel:
            raise Forbidden("No access")

        member = await self._registry.fetch_member(channel.guild_id, subscriber.identity.id)
        if member is None:
            raise Forbidden("Not a member of this server")

        rights = connection.permissions_for(channel, member)
        if not rights.view_channel:
            raise Forbidden("No access")
        if send and not rights.send_messages:
            raise Forbidden("You cannot send messages in this channel")

        if channel.nsfw and not subscriber.identity.age_verified:
            raise RestrictedContentGate()
        return channel, connection

    async def join(self, subscriber: Subscriber, channel_id: str) -> None:
        """Authorise and enter a channel room.

        A join that completes after disconnect or after a newer join is dropped,
        as is one whose room was left while it was pending.
        """
        room = room_for(channel_id)
        subscriber.room_requests += 1
        subscriber.pending_room = room
        ticket = subscriber.room_requests
        await self.authorize(subscriber, channel_id)
        if subscriber.closed or ticket != subscriber.room_requests:
            logger.debug(
                "Dropping superseded join of %s to %s", subscriber.identity.username, channel_id
            )
            return
        subscriber.pending_room = None
        self._hub.join(subscriber, room)
        logger.debug("%s joined channel %s", subscriber.identity.username, channel_id)

    def leave(self, subscriber: Subscriber, channel_id: str) -> None:
        room = room_for(channel_id)
        if subscriber.pending_room == room:
            subscriber.room_requests += 1
            subscriber.pending_room = None
        self._hub.leave(subscriber, room)

    async def send(self, subscriber: Subscriber, request: SendRequest) -> Any:
        """Validate a send and hand it to the channel's delivery queue.

        Returns the ``RelayMessage`` of the posted message.
        """
        self.throttle.check(subscriber.send_times)

        channel, connection = await self.authorize(subscriber, request.channel_id, send=True)
        files = self._decode_files(request)
        content = request.content or ""
        if not content.strip() and not files:
            raise ValidationFailed("Message is empty")

        if request.reply_to:
            quote = await self._reply_context(connection, channel, request.reply_to)
            content = f"{quote}{content}"[:MAX_CONTENT_LENGTH]

        return await self._proxy.send_as_user(
            channel, subscriber.identity, content, files, reply_to=request.reply_to
        )

    def typing(self, subscriber: Subscriber, channel_id: str) -> None:
        """Rebroadcast a typing indicator to the subscriber's current room."""
        room = room_for(channel_id)
        if subscriber.room != room:
            return
        identity = subscriber.identity
        payload = TypingPayload(
            channel_id=channel_id,
            user_id=identity.id,
            username=identity.username,
            avatar=identity.avatar,
        )
        self._hub.emit(room, "typing:start", payload.wire(), exclude=subscriber)

    def disconnect(self, subscriber: Subscriber) -> None:
        """Forget room membership and send history; queued sends still complete."""
        self._hub.disconnect(subscriber)
        subscriber.send_times.clear()
        logger.debug("%s disconnected", subscriber.identity.username)

    def _decode_files(self, request: SendRequest) -> list[OutboundFile]:
        files: list[OutboundFile] = []
        total = 0
        for upload in request.files:
            try:
                data = upload.content()
            except ValueError as exc:
                raise ValidationFailed(str(exc)) from exc
            total += len(data)
            if total > self.max_upload_bytes:
                raise ValidationFailed("Attachments are too large")
            files.append(
                OutboundFile(filename=upload.originalname, data=data, content_type=upload.mimetype)
            )
        return files

    async def _reply_context(
        self, connection: UpstreamConnection, channel: Channel, message_id: str
    ) -> str:
        """Return a one-line quote of the replied-to message, or ``""``."""
        try:
            message = await asyncio.wait_for(
                connection.fetch_message(channel.id, message_id),
                timeout=self.reply_timeout,
            )
        except (TimeoutError, RelayError) as exc:
            logger.info("Reply lookup for %s in %s skipped: %r", message_id, channel.id, exc)
            return ""
        shaped = shape_message(message) if message is not None else None
        if shaped is None:
            return ""
        author = shaped.global_name or shaped.author_username
        snippet = " ".join(shaped.content.split())
        if len(snippet) > QUOTE_LENGTH:
            snippet = snippet[: QUOTE_LENGTH - 1] + "…"
        return f"> **{author}**: {snippet}\n"

    # --- frame dispatch ---------------------------------------------------------
    async def dispatch(self, subscriber: Subscriber, frame: ClientFrame) -> dict[str, Any] | None:
        """Run one client frame and return its acknowledgement, if one was asked for."""
        handler = self._handlers.get(frame.event)
        try:
            if handler is None:
                raise ValidationFailed(f"Unknown event {frame.event!r}")
            result = await handler(subscriber, frame.data)
            reply: dict[str, Any] = {"success": True, **result}
        except RelayError as exc:
            logger.debug("%s from %s failed: %s", frame.event, subscriber.identity.username, exc)
            reply = exc.to_ack()
        except Exception:
            logger.exception("Unhandled error in %s", frame.event)
            reply = {"error": f"Failed to handle {frame.event}", "code": "InternalError"}

        if frame.ack is None:
            return None
        return {"ack": frame.ack, **reply}

    async def _on_join(self, subscriber: Subscriber, data: dict[str, Any]) -> dict[str, Any]:
        request: ChannelRequest = _parse(ChannelRequest, data)
        await self.join(subscriber, request.channel_id)
        return {}

    async def _on_leave(self, subscriber: Subscriber, data: dict[str, Any]) -> dict[str, Any]:
        request: ChannelRequest = _parse(ChannelRequest, data)
        self.leave(subscriber, request.channel_id)
        return {}

    async def _on_send(self, subscriber: Subscriber, data: dict[str, Any]) -> dict[str, Any]:
        request: SendRequest = _parse(SendRequest, data)
        message = await self.send(subscriber, request)
        return {"messageId": message.id, "message": message.wire()}

    async def _on_typing(self, subscriber: Subscriber, data: dict[str, Any]) -> dict[str, Any]:
        request: ChannelRequest = _parse(ChannelRequest, data)
        self.typing(subscriber, request.channel_id)
        return {}
