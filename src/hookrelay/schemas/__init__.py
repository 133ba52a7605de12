# src/hookrelay/schemas/__init__.py
"""
Pydantic schemas for socket frames and API responses.

These schemas define the wire structure of relay data for serialization and validation.
"""

from .guild import (
    CanSendResponse,
    CategoryResponse,
    ChannelResponse,
    GuildInfoResponse,
    GuildResponse,
    MemberResponse,
    RoleResponse,
)
from .message import MessageDeletePayload, RelayAttachment, RelayEmbed, RelayMessage, TypingPayload
from .realtime import ChannelRequest, ClientFrame, FileUpload, SendRequest
from .user import BotCreate, BotResponse, UserResponse

__all__ = [
    "CanSendResponse", "CategoryResponse", "ChannelResponse",
    "GuildInfoResponse", "GuildResponse", "MemberResponse", "RoleResponse",
    "MessageDeletePayload", "RelayAttachment", "RelayEmbed", "RelayMessage", "TypingPayload",
    "ChannelRequest", "ClientFrame", "FileUpload", "SendRequest",
    "BotCreate", "BotResponse", "UserResponse",
]
