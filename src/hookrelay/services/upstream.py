# src/hookrelay/services/upstream.py
"""Upstream platform boundary.

The relay core talks to the chat platform only through ``UpstreamConnection``.
There is one real implementation (``DiscordConnection``); tests provide fakes.
Value objects handed across the boundary are frozen dataclasses so the core
never holds on to live library objects.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

EventKind = Literal["message_create", "message_update", "message_delete", "typing_start"]

EventHandler = Callable[..., Awaitable[None]]

CDN_BASE_URL = "https://cdn.discordapp.com"


@dataclass(frozen=True)
class Guild:
    """A server-like grouping visible to one connection."""

    id: str
    name: str
    connection_id: str
    icon: str | None = None
    member_count: int | None = None
    owner_id: str | None = None


@dataclass(frozen=True)
class Channel:
    """A text channel inside a guild."""

    id: str
    guild_id: str
    name: str
    connection_id: str
    type: int = 0
    position: int = 0
    parent_id: str | None = None
    topic: str | None = None
    nsfw: bool = False


@dataclass(frozen=True)
class Category:
    """A channel category, used only for grouping channel listings."""

    id: str
    name: str
    position: int


@dataclass(frozen=True)
class Role:
    """A guild role as shown in member listings."""

    id: str
    name: str
    position: int
    color: str | None = None


@dataclass(frozen=True)
class Member:
    """A resolved guild member."""

    user_id: str
    guild_id: str
    username: str
    global_name: str | None = None
    nickname: str | None = None
    avatar: str | None = None
    guild_avatar: str | None = None
    bot: bool = False
    roles: tuple[Role, ...] = ()
    display_color: str | None = None

    # Library object backing this member, used for permission maths.
    raw: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class MessageDeleted:
    """Payload of a message deletion event."""

    id: str
    channel_id: str
    guild_id: str | None


@dataclass(frozen=True)
class TypingStarted:
    """Payload of a typing indicator event."""

    channel_id: str
    guild_id: str | None
    user_id: str
    username: str
    avatar: str | None = None


@dataclass(frozen=True)
class ChannelPermissions:
    """The subset of channel permissions the relay cares about."""

    view_channel: bool = False
    send_messages: bool = False
    read_message_history: bool = False
    manage_webhooks: bool = False

    @classmethod
    def none(cls) -> ChannelPermissions:
        return cls()


@dataclass(frozen=True)
class Webhook:
    """A channel-scoped proxy endpoint able to post under any name/avatar."""

    id: str
    token: str
    channel_id: str
    name: str | None = None
    owner_id: str | None = None


@dataclass(frozen=True)
class OutboundFile:
    """A file attached to an outbound send."""

    filename: str
    data: bytes
    content_type: str | None = None


@dataclass(frozen=True)
class WebhookPost:
    """Everything needed to post one message through a webhook."""

    content: str | None
    username: str
    avatar_url: str
    files: Sequence[OutboundFile] = field(default_factory=tuple)


@runtime_checkable
class UpstreamConnection(Protocol):
    """Capabilities the relay requires from one authenticated upstream session."""

    @property
    def connection_id(self) -> str: ...

    @property
    def identity_id(self) -> str | None: ...

    @property
    def display_name(self) -> str: ...

    async def start(self, credential: str) -> None: ...

    async def close(self) -> None: ...

    def guilds(self) -> list[Guild]: ...

    def get_guild(self, guild_id: str) -> Guild | None: ...

    def get_channel(self, channel_id: str) -> Channel | None: ...

    def text_channels(self, guild_id: str) -> list[Channel]: ...

    def categories(self, guild_id: str) -> list[Category]: ...

    def permissions_for_self(self, channel: Channel) -> ChannelPermissions: ...

    def permissions_for(self, channel: Channel, member: Member) -> ChannelPermissions: ...

    async def fetch_member(self, guild_id: str, user_id: str) -> Member | None: ...

    async def list_members(self, guild_id: str, limit: int = 1000) -> list[Member]: ...

    async def fetch_messages(
        self, channel_id: str, *, before: str | None = None, limit: int = 50
    ) -> list[Any]: ...

    async def fetch_message(self, channel_id: str, message_id: str) -> Any | None: ...

    async def fetch_webhook(self, webhook_id: str) -> Webhook | None: ...

    async def channel_webhooks(self, channel_id: str) -> list[Webhook]: ...

    async def create_webhook(self, channel_id: str, name: str) -> Webhook: ...

    async def send_via_webhook(self, webhook: Webhook, post: WebhookPost) -> Any: ...

    def subscribe(self, event_kind: EventKind, handler: EventHandler) -> None: ...


ConnectionFactory = Callable[[str], UpstreamConnection]


def avatar_url(user_id: str, avatar_hash: str | None) -> str:
    """Return the CDN URL of a user's avatar, falling back to the default set."""
    if avatar_hash:
        return f"{CDN_BASE_URL}/avatars/{user_id}/{avatar_hash}.png"
    try:
        index = (int(user_id) >> 22) % 6
    except ValueError:
        index = 0
    return f"{CDN_BASE_URL}/embed/avatars/{index}.png"
