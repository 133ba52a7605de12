# src/hookrelay/api/v1/endpoints/admin.py
"""Administrator endpoints for managing additional bots."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status

from hookrelay.core.errors import DuplicateRegistration, NotFound, RelayError, Unauthenticated
from hookrelay.core.settings import settings
from hookrelay.schemas.user import BotCreate, BotResponse
from hookrelay.services.bots import delete_registered_bot, save_registered_bot
from hookrelay.services.discord_upstream import identify_credential

from ..dependencies import AdminDep, RuntimeDep, SessionDep

router = APIRouter(prefix="/admin", tags=["admin"])

logger = logging.getLogger(__name__)

CredentialIdentifier = Callable[[str], Awaitable[tuple[str, str]]]


def get_credential_identifier() -> CredentialIdentifier:
    """Return the coroutine used to learn a bot's id and name from its token."""
    return identify_credential


IdentifierDep = Annotated[CredentialIdentifier, Depends(get_credential_identifier)]


@router.get("/bots", response_model=list[BotResponse])
async def list_bots(admin: AdminDep, runtime: RuntimeDep) -> list[BotResponse]:
    """List the bots added at runtime; the primary bot is not included."""
    return [
        BotResponse(
            bot_id=connection.connection_id,
            name=connection.display_name,
            guild_count=len(connection.guilds()),
        )
        for connection in runtime.registry
        if connection.connection_id != settings.discord_client_id
    ]


@router.post("/bots", response_model=BotResponse)
async def add_bot(
    payload: BotCreate,
    admin: AdminDep,
    runtime: RuntimeDep,
    db: SessionDep,
    identify: IdentifierDep,
) -> BotResponse:
    """Log in an extra bot, start relaying its guilds and remember its token."""
    if not payload.token.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Token required", "code": "ValidationFailed"},
        )

    try:
        bot_id, bot_name = await identify(payload.token)
    except Unauthenticated as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Failed to add bot", "code": exc.code},
        ) from exc
    except RelayError as exc:
        raise exc.to_http() from exc

    if bot_id in runtime.registry:
        raise DuplicateRegistration("Bot already registered").to_http()

    try:
        connection = await runtime.registry.add(bot_id, payload.token)
    except RelayError as exc:
        raise exc.to_http() from exc

    save_registered_bot(
        db,
        bot_id=bot_id,
        bot_token=payload.token,
        bot_name=bot_name,
        added_by=admin.user_id,
    )
    logger.info("Bot %s (%s) added by %s", bot_name, bot_id, admin.user_id)
    return BotResponse(bot_id=bot_id, name=bot_name, guild_count=len(connection.guilds()))


@router.delete("/bots/{bot_id}")
async def remove_bot(
    bot_id: str, admin: AdminDep, runtime: RuntimeDep, db: SessionDep
) -> dict[str, Any]:
    """Disconnect a runtime-added bot and forget its token."""
    if bot_id == settings.discord_client_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Cannot remove primary bot", "code": "ValidationFailed"},
        )
    if bot_id not in runtime.registry:
        raise NotFound("Bot not found").to_http()

    await runtime.registry.remove(bot_id)
    delete_registered_bot(db, bot_id)
    logger.info("Bot %s removed by %s", bot_id, admin.user_id)
    return {"success": True}
