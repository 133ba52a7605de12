# src/hookrelay/services/bots.py
"""Persistence of extra bot credentials and their startup login."""
from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy.orm import Session

from hookrelay.core.errors import RelayError
from hookrelay.core.settings import settings
from hookrelay.models import RegisteredBot
from hookrelay.services.registry import ConnectionRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "get_registered_bots",
    "get_registered_bot",
    "save_registered_bot",
    "delete_registered_bot",
    "load_connections",
]


def get_registered_bots(db: Session) -> Sequence[RegisteredBot]:
    """Return every persisted bot in registration order."""
    return db.query(RegisteredBot).order_by(RegisteredBot.created_at).all()


def get_registered_bot(db: Session, bot_id: str) -> RegisteredBot | None:
    return db.query(RegisteredBot).filter(RegisteredBot.bot_id == bot_id).first()


def save_registered_bot(
    db: Session,
    *,
    bot_id: str,
    bot_token: str,
    bot_name: str | None = None,
    added_by: str | None = None,
) -> RegisteredBot:
    """Insert or replace the credential of a bot."""
    record = get_registered_bot(db, bot_id)
    if record is None:
        record = RegisteredBot(bot_id=bot_id, bot_token=bot_token)
        db.add(record)
    record.bot_token = bot_token
    record.bot_name = bot_name
    record.added_by = added_by
    db.commit()
    db.refresh(record)
    return record


def delete_registered_bot(db: Session, bot_id: str) -> bool:
    record = get_registered_bot(db, bot_id)
    if record is None:
        return False
    db.delete(record)
    db.commit()
    return True


async def load_connections(registry: ConnectionRegistry, db: Session) -> int:
    """Log in the primary bot from settings plus every persisted bot.

    A bot that fails to log in is logged and skipped. Returns the number of
    connections live afterwards.
    """
    if settings.discord_token and settings.discord_client_id:
        logger.info("Logging in primary bot %s", settings.discord_client_id)
        try:
            await registry.add(settings.discord_client_id, settings.discord_token)
        except RelayError as exc:
            logger.error("Failed to log in primary bot %s: %s", settings.discord_client_id, exc)
    else:
        logger.warning("DISCORD_TOKEN/DISCORD_CLIENT_ID not set; starting without a primary bot")

    for bot in get_registered_bots(db):
        if bot.bot_id in registry:
            continue
        try:
            await registry.add(bot.bot_id, bot.bot_token)
        except RelayError as exc:
            logger.error("Failed to log in registered bot %s: %s", bot.bot_name or bot.bot_id, exc)

    total_guilds = sum(len(connection.guilds()) for connection in registry)
    logger.info("%d bot(s) active, %d total guilds", len(registry), total_guilds)
    return len(registry)
