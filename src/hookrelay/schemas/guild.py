# src/hookrelay/schemas/guild.py
"""Guild, channel and member response schemas."""

from __future__ import annotations

from pydantic import Field

from .base import WireModel


class GuildResponse(WireModel):
    id: str
    name: str
    icon: str | None = None
    member_count: int | None = None


class GuildInfoResponse(GuildResponse):
    owner_id: str | None = None


class ChannelResponse(WireModel):
    id: str
    name: str
    nsfw: bool = False
    topic: str | None = None
    type: int = 0


class CategoryResponse(WireModel):
    """A channel category; ``id`` and ``name`` are null for uncategorised channels."""

    id: str | None
    name: str | None
    channels: list[ChannelResponse]


class RoleResponse(WireModel):
    id: str
    name: str
    color: str | None = None
    position: int


class MemberResponse(WireModel):
    id: str
    username: str
    global_name: str | None = None
    nickname: str | None = None
    avatar: str | None = None
    guild_avatar: str | None = None
    bot: bool = False
    roles: list[RoleResponse] = Field(default_factory=list)
    highest_role_color: str | None = None
    is_owner: bool = False


class CanSendResponse(WireModel):
    can_send: bool
    nsfw: bool
