# src/hookrelay/schemas/message.py
"""Relay message wire schemas."""

from __future__ import annotations

from pydantic import Field

from .base import WireModel


class RelayAttachment(WireModel):
    """A file attached to a relayed message."""

    id: str
    filename: str
    url: str
    proxy_url: str | None = Field(default=None, alias="proxyURL")
    size: int | None = None
    content_type: str | None = None
    width: int | None = None
    height: int | None = None


class EmbedFooter(WireModel):
    text: str | None = None
    icon_url: str | None = Field(default=None, alias="iconURL")


class EmbedImage(WireModel):
    url: str | None = None
    proxy_url: str | None = Field(default=None, alias="proxyURL")
    width: int | None = None
    height: int | None = None


class EmbedAuthor(WireModel):
    name: str | None = None
    url: str | None = None
    icon_url: str | None = Field(default=None, alias="iconURL")


class EmbedField(WireModel):
    name: str
    value: str
    inline: bool = False


class RelayEmbed(WireModel):
    """A rich embed attached to a relayed message."""

    title: str | None = None
    description: str | None = None
    url: str | None = None
    color: int | None = None
    timestamp: str | None = None
    footer: EmbedFooter | None = None
    image: EmbedImage | None = None
    thumbnail: EmbedImage | None = None
    author: EmbedAuthor | None = None
    fields: tuple[EmbedField, ...] = ()


class RelayMessage(WireModel):
    """Canonical shape of a chat message as broadcast to subscribers."""

    id: str
    channel_id: str
    guild_id: str | None
    author_id: str
    author_username: str
    author_avatar: str | None = None
    author_bot: bool = False
    author_color: str | None = None
    global_name: str | None = None
    content: str = ""
    attachments: tuple[RelayAttachment, ...] = ()
    embeds: tuple[RelayEmbed, ...] = ()
    reference_id: str | None = None
    edited_at: int | None = None
    created_at: int | None = None
    is_webhook: bool = False
    webhook_sender_id: str | None = None


class MessageDeletePayload(WireModel):
    """Body of a ``message:delete`` event."""

    id: str
    channel_id: str


class TypingPayload(WireModel):
    """Body of a ``typing:start`` event."""

    channel_id: str
    user_id: str
    username: str
    avatar: str | None = None
