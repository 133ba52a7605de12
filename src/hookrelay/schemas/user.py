# src/hookrelay/schemas/user.py
"""User and admin schemas."""

from __future__ import annotations

from pydantic import BaseModel

from .base import WireModel


class UserResponse(WireModel):
    """The signed-in user as seen by the browser client."""

    id: str
    username: str
    discriminator: str | None = None
    avatar: str | None = None
    global_name: str | None = None
    age_verified: bool = False


class BotCreate(BaseModel):
    """Request body for registering an additional bot."""

    token: str


class BotResponse(WireModel):
    bot_id: str
    name: str
    guild_count: int
