# src/hookrelay/services/relay.py
"""Upstream event relay.

Subscribes to every connection's message and typing events, shapes them into
the relay wire format and broadcasts them to the channel's room.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from hookrelay.db.time import to_epoch_ms
from hookrelay.schemas.message import (
    EmbedAuthor,
    EmbedField,
    EmbedFooter,
    EmbedImage,
    MessageDeletePayload,
    RelayAttachment,
    RelayEmbed,
    RelayMessage,
    TypingPayload,
)
from hookrelay.services.rooms import RoomHub, room_for
from hookrelay.services.upstream import MessageDeleted, TypingStarted, UpstreamConnection

logger = logging.getLogger(__name__)

NO_COLOR = "#000000"


def _id(value: Any) -> str | None:
    return None if value is None else str(value)


def _asset_key(value: Any) -> str | None:
    """Return an avatar hash from either a library asset or a plain string."""
    if value is None:
        return None
    return str(getattr(value, "key", value))


def _color(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, int):
        value = f"#{value:06x}"
    text = str(value)
    return None if text == NO_COLOR else text


def _color_value(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return getattr(value, "value", None)


def _iso(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _present(proxy: Any) -> bool:
    # Embed sub-objects are truthy only when populated.
    return proxy is not None and bool(proxy)


def _attachment(item: Any) -> RelayAttachment:
    return RelayAttachment(
        id=str(item.id),
        filename=getattr(item, "filename", None) or getattr(item, "name", ""),
        url=item.url,
        proxy_url=getattr(item, "proxy_url", None),
        size=getattr(item, "size", None),
        content_type=getattr(item, "content_type", None),
        width=getattr(item, "width", None),
        height=getattr(item, "height", None),
    )


def _image(proxy: Any) -> EmbedImage | None:
    if not _present(proxy):
        return None
    return EmbedImage(
        url=getattr(proxy, "url", None),
        proxy_url=getattr(proxy, "proxy_url", None),
        width=getattr(proxy, "width", None),
        height=getattr(proxy, "height", None),
    )


def _embed(embed: Any) -> RelayEmbed:
    footer = getattr(embed, "footer", None)
    author = getattr(embed, "author", None)
    return RelayEmbed(
        title=getattr(embed, "title", None),
        description=getattr(embed, "description", None),
        url=getattr(embed, "url", None),
        color=_color_value(getattr(embed, "color", None)),
        timestamp=_iso(getattr(embed, "timestamp", None)),
        footer=(
            EmbedFooter(text=getattr(footer, "text", None), icon_url=getattr(footer, "icon_url", None))
            if _present(footer)
            else None
        ),
        image=_image(getattr(embed, "image", None)),
        thumbnail=_image(getattr(embed, "thumbnail", None)),
        author=(
            EmbedAuthor(
                name=getattr(author, "name", None),
                url=getattr(author, "url", None),
                icon_url=getattr(author, "icon_url", None),
            )
            if _present(author)
            else None
        ),
        fields=tuple(
            EmbedField(
                name=str(getattr(item, "name", "")),
                value=str(getattr(item, "value", "")),
                inline=bool(getattr(item, "inline", False)),
            )
            for item in getattr(embed, "fields", None) or ()
        ),
    )


def shape_message(message: Any, *, webhook_sender_id: str | None = None) -> RelayMessage | None:
    """Shape an upstream message object into a ``RelayMessage``.

    Pure and total: missing or malformed data yields ``None`` (the event is
    dropped), never an exception.
    """
    try:
        author = getattr(message, "author", None)
        channel = getattr(message, "channel", None)
        channel_id = getattr(message, "channel_id", None) or getattr(channel, "id", None)
        if author is None or getattr(author, "id", None) is None:
            return None
        if getattr(message, "id", None) is None or channel_id is None:
            return None

        guild = getattr(message, "guild", None)
        guild_id = getattr(message, "guild_id", None) or getattr(guild, "id", None)
        reference = getattr(message, "reference", None)

        return RelayMessage(
            id=str(message.id),
            channel_id=str(channel_id),
            guild_id=_id(guild_id),
            author_id=str(author.id),
            author_username=getattr(author, "name", None) or getattr(author, "username", ""),
            author_avatar=_asset_key(getattr(author, "avatar", None)),
            author_bot=bool(getattr(author, "bot", False)),
            author_color=_color(getattr(author, "colour", None)),
            global_name=getattr(author, "global_name", None),
            content=getattr(message, "content", None) or "",
            attachments=tuple(_attachment(a) for a in getattr(message, "attachments", None) or ()),
            embeds=tuple(_embed(e) for e in getattr(message, "embeds", None) or ()),
            reference_id=_id(getattr(reference, "message_id", None)),
            edited_at=to_epoch_ms(getattr(message, "edited_at", None)),
            created_at=to_epoch_ms(getattr(message, "created_at", None)),
            is_webhook=getattr(message, "webhook_id", None) is not None,
            webhook_sender_id=webhook_sender_id,
        )
    except Exception as exc:
        logger.debug("Dropping unshapeable message %r: %s", getattr(message, "id", None), exc)
        return None


class EventRelay:
    """Republishes upstream events to channel rooms."""

    def __init__(self, hub: RoomHub) -> None:
        self._hub = hub

    def attach(self, connection: UpstreamConnection) -> None:
        """Subscribe to a connection's events."""
        connection.subscribe("message_create", self.on_message_create)
        connection.subscribe("message_update", self.on_message_update)
        connection.subscribe("message_delete", self.on_message_delete)
        connection.subscribe("typing_start", self.on_typing_start)
        logger.info("Event relay attached to bot %s", connection.connection_id)

    async def on_message_create(self, message: Any) -> None:
        shaped = shape_message(message)
        if shaped is None or shaped.guild_id is None:
            return
        self._hub.emit(room_for(shaped.channel_id), "message:create", shaped.wire())

    async def on_message_update(self, message: Any) -> None:
        # Partial edits arrive without a resolved author
        if getattr(message, "author", None) is None:
            return
        shaped = shape_message(message)
        if shaped is None or shaped.guild_id is None:
            return
        self._hub.emit(room_for(shaped.channel_id), "message:update", shaped.wire())

    async def on_message_delete(self, event: MessageDeleted) -> None:
        if event.guild_id is None:
            return
        payload = MessageDeletePayload(id=event.id, channel_id=event.channel_id)
        self._hub.emit(room_for(event.channel_id), "message:delete", payload.wire())

    async def on_typing_start(self, event: TypingStarted) -> None:
        if event.guild_id is None:
            return
        payload = TypingPayload(
            channel_id=event.channel_id,
            user_id=event.user_id,
            username=event.username,
            avatar=event.avatar,
        )
        self._hub.emit(room_for(event.channel_id), "typing:start", payload.wire())
