# src/hookrelay/api/v1/endpoints/guilds.py
"""Guild, channel listing and member endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from hookrelay.core.errors import Forbidden, NotFound, RelayError
from hookrelay.models import UserSession
from hookrelay.schemas.guild import (
    CategoryResponse,
    ChannelResponse,
    GuildInfoResponse,
    GuildResponse,
    MemberResponse,
    RoleResponse,
)
from hookrelay.services.runtime import RelayRuntime
from hookrelay.services.upstream import Guild, Member

from ..dependencies import CurrentUserDep, RuntimeDep

router = APIRouter(prefix="/guilds", tags=["guilds"])

UNKNOWN_CATEGORY_POSITION = 999
MEMBER_LIST_LIMIT = 1000


async def _guild_for_member(
    runtime: RelayRuntime, guild_id: str, user: UserSession
) -> tuple[Guild, Member]:
    guild = runtime.registry.find_guild(guild_id)
    if guild is None:
        raise NotFound("Guild not found").to_http()
    member = await runtime.registry.fetch_member(guild_id, user.user_id)
    if member is None:
        raise Forbidden("Not a member of this guild").to_http()
    return guild, member


def _member_sort_key(member: MemberResponse) -> tuple[int, int, str]:
    top_position = member.roles[0].position if member.roles else -1
    name = member.nickname or member.global_name or member.username
    return (0 if member.is_owner else 1, -top_position, name.lower())


@router.get("", response_model=list[GuildResponse])
async def list_guilds(current_user: CurrentUserDep, runtime: RuntimeDep) -> list[GuildResponse]:
    """List guilds visible to any bot that the user is a member of.

    Guilds seen by several bots are listed once.
    """
    seen: set[str] = set()
    guilds: list[GuildResponse] = []
    for connection in runtime.registry:
        for guild in connection.guilds():
            if guild.id in seen:
                continue
            seen.add(guild.id)
            if await runtime.registry.fetch_member(guild.id, current_user.user_id) is None:
                continue
            guilds.append(
                GuildResponse(
                    id=guild.id,
                    name=guild.name,
                    icon=guild.icon,
                    member_count=guild.member_count,
                )
            )
    return guilds


@router.get("/{guild_id}/channels", response_model=list[CategoryResponse])
async def list_channels(
    guild_id: str, current_user: CurrentUserDep, runtime: RuntimeDep
) -> list[CategoryResponse]:
    """List the text channels both the bot and the user can see, grouped by category."""
    guild, member = await _guild_for_member(runtime, guild_id, current_user)
    connection = runtime.registry.owner_of(guild)
    if connection is None:
        raise NotFound("Guild not found").to_http()

    accessible = sorted(
        (
            channel
            for channel in connection.text_channels(guild_id)
            if connection.permissions_for_self(channel).view_channel
            and connection.permissions_for(channel, member).view_channel
        ),
        key=lambda channel: channel.position,
    )
    known = {category.id: category for category in connection.categories(guild_id)}

    uncategorised: list[ChannelResponse] = []
    grouped: dict[str, list[ChannelResponse]] = {}
    for channel in accessible:
        item = ChannelResponse(
            id=channel.id,
            name=channel.name,
            nsfw=channel.nsfw,
            topic=channel.topic,
            type=channel.type,
        )
        if channel.parent_id is None:
            uncategorised.append(item)
        else:
            grouped.setdefault(channel.parent_id, []).append(item)

    def position(category_id: str) -> int:
        category = known.get(category_id)
        return category.position if category else UNKNOWN_CATEGORY_POSITION

    result = [
        CategoryResponse(
            id=category_id,
            name=known[category_id].name if category_id in known else "Unknown",
            channels=channels,
        )
        for category_id, channels in sorted(grouped.items(), key=lambda item: position(item[0]))
    ]
    if uncategorised:
        result.insert(0, CategoryResponse(id=None, name=None, channels=uncategorised))
    return result


@router.get("/{guild_id}/info", response_model=GuildInfoResponse)
async def guild_info(
    guild_id: str, current_user: CurrentUserDep, runtime: RuntimeDep
) -> GuildInfoResponse:
    guild, _member = await _guild_for_member(runtime, guild_id, current_user)
    return GuildInfoResponse(
        id=guild.id,
        name=guild.name,
        icon=guild.icon,
        member_count=guild.member_count,
        owner_id=guild.owner_id,
    )


@router.get("/{guild_id}/members", response_model=list[MemberResponse])
async def list_members(
    guild_id: str, current_user: CurrentUserDep, runtime: RuntimeDep
) -> list[MemberResponse]:
    """List guild members: owner first, then by highest role, then by name."""
    guild, _member = await _guild_for_member(runtime, guild_id, current_user)
    connection = runtime.registry.owner_of(guild)
    if connection is None:
        raise NotFound("Guild not found").to_http()

    try:
        members = await connection.list_members(guild_id, limit=MEMBER_LIST_LIMIT)
    except RelayError as exc:
        raise exc.to_http() from exc

    formatted = [
        MemberResponse(
            id=item.user_id,
            username=item.username,
            global_name=item.global_name,
            nickname=item.nickname,
            avatar=item.avatar,
            guild_avatar=item.guild_avatar,
            bot=item.bot,
            roles=[
                RoleResponse(id=role.id, name=role.name, color=role.color, position=role.position)
                for role in sorted(item.roles, key=lambda role: role.position, reverse=True)
                if role.id != guild.id
            ],
            highest_role_color=item.display_color,
            is_owner=item.user_id == guild.owner_id,
        )
        for item in members
    ]
    formatted.sort(key=_member_sort_key)
    return formatted
