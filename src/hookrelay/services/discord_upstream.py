# src/hookrelay/services/discord_upstream.py
"""Discord implementation of the upstream connection.

Wraps a ``discord.Client`` per bot credential. Gateway events are fanned out to
the handlers registered through ``subscribe``; REST failures are translated to
the relay's error taxonomy so nothing library specific leaks into the core.
"""

from __future__ import annotations

import asyncio
import io
import logging
from collections import defaultdict
from typing import Any

import discord

from hookrelay.core.errors import NotFound, Unauthenticated, UpstreamUnavailable
from hookrelay.services.upstream import (
    Category,
    Channel,
    ChannelPermissions,
    EventHandler,
    EventKind,
    Guild,
    Member,
    MessageDeleted,
    Role,
    TypingStarted,
    Webhook,
    WebhookPost,
)

# Configure logger for this module
logger = logging.getLogger(__name__)

TEXT_CHANNEL_TYPES = (discord.ChannelType.text, discord.ChannelType.news)
READY_TIMEOUT_SECONDS = 30.0
NO_COLOR = "#000000"


def _intents() -> discord.Intents:
    intents = discord.Intents.none()
    intents.guilds = True
    intents.guild_messages = True
    intents.guild_typing = True
    intents.message_content = True
    intents.members = True
    return intents


def _hex_color(colour: discord.Colour | None) -> str | None:
    if colour is None:
        return None
    value = str(colour)
    return None if value == NO_COLOR else value


def _to_guild(guild: discord.Guild, connection_id: str) -> Guild:
    return Guild(
        id=str(guild.id),
        name=guild.name,
        connection_id=connection_id,
        icon=guild.icon.key if guild.icon else None,
        member_count=guild.member_count,
        owner_id=str(guild.owner_id) if guild.owner_id else None,
    )


def _to_channel(channel: discord.abc.GuildChannel, connection_id: str) -> Channel:
    return Channel(
        id=str(channel.id),
        guild_id=str(channel.guild.id),
        name=channel.name,
        connection_id=connection_id,
        type=int(channel.type.value),
        position=channel.position,
        parent_id=str(channel.category_id) if channel.category_id else None,
        topic=getattr(channel, "topic", None),
        nsfw=bool(getattr(channel, "nsfw", False)),
    )


def _to_member(member: discord.Member) -> Member:
    guild = member.guild
    roles = sorted(
        (role for role in member.roles if role.id != guild.id),
        key=lambda role: role.position,
        reverse=True,
    )
    return Member(
        user_id=str(member.id),
        guild_id=str(guild.id),
        username=member.name,
        global_name=member.global_name,
        nickname=member.nick,
        avatar=member.avatar.key if member.avatar else None,
        guild_avatar=member.guild_avatar.key if member.guild_avatar else None,
        bot=member.bot,
        roles=tuple(
            Role(
                id=str(role.id),
                name=role.name,
                position=role.position,
                color=_hex_color(role.colour),
            )
            for role in roles
        ),
        display_color=_hex_color(member.colour),
        raw=member,
    )


def _to_permissions(perms: discord.Permissions) -> ChannelPermissions:
    return ChannelPermissions(
        view_channel=perms.view_channel,
        send_messages=perms.send_messages,
        read_message_history=perms.read_message_history,
        manage_webhooks=perms.manage_webhooks,
    )


def _to_webhook(webhook: discord.Webhook) -> Webhook:
    return Webhook(
        id=str(webhook.id),
        token=webhook.token or "",
        channel_id=str(webhook.channel_id),
        name=webhook.name,
        owner_id=str(webhook.user.id) if webhook.user else None,
    )


class _RelayClient(discord.Client):
    """discord.Client that forwards gateway events to registered handlers."""

    def __init__(self, owner: DiscordConnection) -> None:
        super().__init__(intents=_intents())
        self._owner = owner

    async def on_message(self, message: discord.Message) -> None:
        await self._owner.dispatch("message_create", message)

    async def on_message_edit(self, _before: discord.Message, after: discord.Message) -> None:
        await self._owner.dispatch("message_update", after)

    async def on_raw_message_delete(self, payload: discord.RawMessageDeleteEvent) -> None:
        await self._owner.dispatch(
            "message_delete",
            MessageDeleted(
                id=str(payload.message_id),
                channel_id=str(payload.channel_id),
                guild_id=str(payload.guild_id) if payload.guild_id else None,
            ),
        )

    async def on_typing(
        self, channel: discord.abc.Messageable, user: discord.abc.User, _when: Any
    ) -> None:
        guild = getattr(channel, "guild", None)
        await self._owner.dispatch(
            "typing_start",
            TypingStarted(
                channel_id=str(getattr(channel, "id", "")),
                guild_id=str(guild.id) if guild else None,
                user_id=str(user.id),
                username=user.name,
                avatar=user.avatar.key if user.avatar else None,
            ),
        )


class DiscordConnection:
    """One logged-in Discord bot."""

    def __init__(self, connection_id: str, *, ready_timeout: float = READY_TIMEOUT_SECONDS) -> None:
        self._connection_id = connection_id
        self._ready_timeout = ready_timeout
        self._client = _RelayClient(self)
        self._runner: asyncio.Task[None] | None = None
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def identity_id(self) -> str | None:
        user = self._client.user
        return str(user.id) if user else None

    @property
    def display_name(self) -> str:
        user = self._client.user
        return str(user) if user else self._connection_id

    async def start(self, credential: str) -> None:
        """Log in and wait until the gateway has delivered the guild cache."""
        try:
            await self._client.login(credential)
        except discord.LoginFailure as exc:
            await self._client.close()
            raise Unauthenticated("Invalid bot token") from exc
        except discord.HTTPException as exc:
            await self._client.close()
            raise UpstreamUnavailable(f"Login failed: {exc}") from exc

        self._runner = asyncio.create_task(self._client.connect(reconnect=True))
        ready = asyncio.create_task(self._client.wait_until_ready())
        done, _ = await asyncio.wait(
            {ready, self._runner},
            timeout=self._ready_timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
        if ready not in done:
            ready.cancel()
            await self.close()
            raise UpstreamUnavailable(f"Bot {self._connection_id} did not become ready")

        logger.info(
            "Bot %s (%s) connected with %d guilds",
            self.display_name,
            self._connection_id,
            len(self._client.guilds),
        )

    async def close(self) -> None:
        await self._client.close()
        if self._runner is not None:
            if not self._runner.done():
                self._runner.cancel()
            try:
                await self._runner
            except (asyncio.CancelledError, discord.DiscordException):
                pass
            self._runner = None

    # --- events -----------------------------------------------------------------
    def subscribe(self, event_kind: EventKind, handler: EventHandler) -> None:
        self._handlers[event_kind].append(handler)

    async def dispatch(self, event_kind: str, *args: Any) -> None:
        for handler in list(self._handlers.get(event_kind, ())):
            try:
                await handler(*args)
            except Exception:
                logger.exception("Handler for %s on bot %s failed", event_kind, self._connection_id)

    # --- cache lookups ----------------------------------------------------------
    def _raw_guild(self, guild_id: str) -> discord.Guild | None:
        try:
            return self._client.get_guild(int(guild_id))
        except ValueError:
            return None

    def _raw_channel(self, channel_id: str) -> Any:
        try:
            channel = self._client.get_channel(int(channel_id))
        except ValueError:
            return None
        if channel is None or getattr(channel, "guild", None) is None:
            return None
        return channel

    def guilds(self) -> list[Guild]:
        return [_to_guild(guild, self._connection_id) for guild in self._client.guilds]

    def get_guild(self, guild_id: str) -> Guild | None:
        guild = self._raw_guild(guild_id)
        return _to_guild(guild, self._connection_id) if guild else None

    def get_channel(self, channel_id: str) -> Channel | None:
        channel = self._raw_channel(channel_id)
        if channel is None or channel.type not in TEXT_CHANNEL_TYPES:
            return None
        return _to_channel(channel, self._connection_id)

    def text_channels(self, guild_id: str) -> list[Channel]:
        guild = self._raw_guild(guild_id)
        if guild is None:
            return []
        return [
            _to_channel(channel, self._connection_id)
            for channel in guild.channels
            if channel.type in TEXT_CHANNEL_TYPES
        ]

    def categories(self, guild_id: str) -> list[Category]:
        guild = self._raw_guild(guild_id)
        if guild is None:
            return []
        return [
            Category(id=str(category.id), name=category.name, position=category.position)
            for category in guild.categories
        ]

    def permissions_for_self(self, channel: Channel) -> ChannelPermissions:
        raw = self._raw_channel(channel.id)
        if raw is None or raw.guild.me is None:
            return ChannelPermissions.none()
        return _to_permissions(raw.permissions_for(raw.guild.me))

    def permissions_for(self, channel: Channel, member: Member) -> ChannelPermissions:
        raw = self._raw_channel(channel.id)
        if raw is None:
            return ChannelPermissions.none()
        target = member.raw or raw.guild.get_member(int(member.user_id))
        if target is None:
            return ChannelPermissions.none()
        return _to_permissions(raw.permissions_for(target))

    # --- REST -------------------------------------------------------------------
    async def fetch_member(self, guild_id: str, user_id: str) -> Member | None:
        guild = self._raw_guild(guild_id)
        if guild is None:
            return None
        try:
            member = await guild.fetch_member(int(user_id))
        except (discord.NotFound, ValueError):
            return None
        except discord.HTTPException as exc:
            raise UpstreamUnavailable(f"Member lookup failed: {exc}") from exc
        return _to_member(member)

    async def list_members(self, guild_id: str, limit: int = 1000) -> list[Member]:
        guild = self._raw_guild(guild_id)
        if guild is None:
            raise NotFound("Guild not found")
        try:
            return [_to_member(member) async for member in guild.fetch_members(limit=limit)]
        except discord.HTTPException as exc:
            raise UpstreamUnavailable(f"Member listing failed: {exc}") from exc

    async def fetch_messages(
        self, channel_id: str, *, before: str | None = None, limit: int = 50
    ) -> list[Any]:
        channel = self._raw_channel(channel_id)
        if channel is None:
            raise NotFound("Channel not found")
        anchor = discord.Object(id=int(before)) if before else None
        try:
            return [message async for message in channel.history(limit=limit, before=anchor)]
        except discord.HTTPException as exc:
            raise UpstreamUnavailable(f"History fetch failed: {exc}") from exc

    async def fetch_message(self, channel_id: str, message_id: str) -> Any | None:
        channel = self._raw_channel(channel_id)
        if channel is None:
            return None
        try:
            return await channel.fetch_message(int(message_id))
        except (discord.NotFound, ValueError):
            return None
        except discord.HTTPException as exc:
            raise UpstreamUnavailable(f"Message fetch failed: {exc}") from exc

    async def fetch_webhook(self, webhook_id: str) -> Webhook | None:
        try:
            webhook = await self._client.fetch_webhook(int(webhook_id))
        except (discord.NotFound, ValueError):
            return None
        except discord.HTTPException as exc:
            raise UpstreamUnavailable(f"Webhook fetch failed: {exc}") from exc
        return _to_webhook(webhook)

    async def channel_webhooks(self, channel_id: str) -> list[Webhook]:
        channel = self._raw_channel(channel_id)
        if channel is None:
            raise NotFound("Channel not found")
        try:
            return [_to_webhook(webhook) for webhook in await channel.webhooks()]
        except discord.HTTPException as exc:
            raise UpstreamUnavailable(f"Webhook listing failed: {exc}") from exc

    async def create_webhook(self, channel_id: str, name: str) -> Webhook:
        channel = self._raw_channel(channel_id)
        if channel is None:
            raise NotFound("Channel not found")
        try:
            webhook = await channel.create_webhook(name=name)
        except discord.HTTPException as exc:
            raise UpstreamUnavailable(f"Webhook creation failed: {exc}") from exc
        logger.info("Created webhook '%s' in channel #%s", name, channel_id)
        return _to_webhook(webhook)

    async def send_via_webhook(self, webhook: Webhook, post: WebhookPost) -> Any:
        partial = discord.Webhook.partial(int(webhook.id), webhook.token, client=self._client)
        files = [
            discord.File(io.BytesIO(item.data), filename=item.filename) for item in post.files
        ]
        try:
            return await partial.send(
                content=post.content or discord.utils.MISSING,
                username=post.username,
                avatar_url=post.avatar_url,
                files=files or discord.utils.MISSING,
                wait=True,
            )
        except discord.NotFound as exc:
            raise NotFound("Webhook no longer exists") from exc
        except discord.HTTPException as exc:
            raise UpstreamUnavailable(f"Webhook send failed: {exc}") from exc


def create_discord_connection(connection_id: str) -> DiscordConnection:
    """Connection factory used by the registry in production."""
    return DiscordConnection(connection_id)


async def identify_credential(token: str) -> tuple[str, str]:
    """Log in with ``token`` just long enough to learn the bot's id and tag."""
    client = discord.Client(intents=discord.Intents.none())
    try:
        await client.login(token)
        user = client.user
        if user is None:
            raise Unauthenticated("Invalid bot token")
        return str(user.id), str(user)
    except discord.LoginFailure as exc:
        raise Unauthenticated("Invalid bot token") from exc
    except discord.HTTPException as exc:
        raise UpstreamUnavailable(f"Login failed: {exc}") from exc
    finally:
        await client.close()
