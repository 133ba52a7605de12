# src/hookrelay/api/v1/endpoints/channels.py
"""Channel history and send-capability endpoints."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Query

from hookrelay.core.errors import Forbidden, NotFound, RelayError, RestrictedContentGate
from hookrelay.core.settings import settings
from hookrelay.schemas.guild import CanSendResponse
from hookrelay.services.relay import shape_message

from ..dependencies import CurrentUserDep, RuntimeDep

router = APIRouter(prefix="/channels", tags=["channels"])


@router.get("/{channel_id}/messages")
async def read_messages(
    channel_id: str,
    current_user: CurrentUserDep,
    runtime: RuntimeDep,
    before: Annotated[str | None, Query()] = None,
    limit: Annotated[int, Query(ge=1)] = 50,
) -> list[dict[str, Any]]:
    """Return a page of channel history, oldest first.

    ``before`` is a message id cursor; ``limit`` is capped at the page limit.
    """
    registry = runtime.registry
    channel = registry.find_channel(channel_id)
    if channel is None:
        raise NotFound("Channel not found").to_http()
    connection = registry.owner_of(channel)
    if connection is None or not connection.permissions_for_self(channel).view_channel:
        raise Forbidden("No access").to_http()

    member = await registry.fetch_member(channel.guild_id, current_user.user_id)
    if member is None:
        raise Forbidden("Not a member of this guild").to_http()
    rights = connection.permissions_for(channel, member)
    if not (rights.view_channel and rights.read_message_history):
        raise Forbidden("No access to this channel").to_http()
    if channel.nsfw and not current_user.age_verified:
        raise RestrictedContentGate().to_http()

    try:
        messages = await connection.fetch_messages(
            channel_id, before=before, limit=min(limit, settings.message_page_limit)
        )
    except RelayError as exc:
        raise exc.to_http() from exc

    shaped = (shape_message(message) for message in messages)
    return [message.wire() for message in reversed(list(shaped)) if message is not None]


@router.get("/{channel_id}/can-send", response_model=CanSendResponse)
async def can_send(
    channel_id: str, current_user: CurrentUserDep, runtime: RuntimeDep
) -> CanSendResponse:
    """Tell the client whether to enable the message box for a channel."""
    registry = runtime.registry
    channel = registry.find_channel(channel_id)
    if channel is None:
        raise NotFound("Channel not found").to_http()
    connection = registry.owner_of(channel)
    if connection is None:
        raise NotFound("Channel not found").to_http()

    member = await registry.fetch_member(channel.guild_id, current_user.user_id)
    allowed = False
    if member is not None and connection.permissions_for_self(channel).manage_webhooks:
        rights = connection.permissions_for(channel, member)
        allowed = rights.view_channel and rights.send_messages
    return CanSendResponse(can_send=allowed, nsfw=channel.nsfw)
