# src/hookrelay/models/__init__.py
"""SQLAlchemy models for the Hook Relay service."""

from .bot import RegisteredBot
from .session import UserSession
from .webhook import WebhookRecord

__all__ = [
    "RegisteredBot",
    "UserSession",
    "WebhookRecord",
]
