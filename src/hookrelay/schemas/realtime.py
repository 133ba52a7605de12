# src/hookrelay/schemas/realtime.py
"""Frames exchanged over the realtime socket."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from pydantic import BaseModel, Field, model_validator

from .base import WireModel


class ClientFrame(BaseModel):
    """A client → server event, optionally asking for an acknowledgement."""

    event: str
    data: dict[str, Any] = Field(default_factory=dict)
    ack: int | str | None = None


class ChannelRequest(WireModel):
    """Payload of ``channel:join``, ``channel:leave`` and ``typing:start``."""

    channel_id: str


class FileUpload(WireModel):
    """A file sent inline with ``message:send``.

    Browsers send either the raw bytes as an integer array (``buffer``) or a
    base64 string (``data``).
    """

    originalname: str
    mimetype: str | None = None
    size: int | None = None
    buffer: list[int] | None = None
    data: str | None = None

    @model_validator(mode="after")
    def _require_content(self) -> FileUpload:
        if self.buffer is None and self.data is None:
            raise ValueError("file has no content")
        return self

    def content(self) -> bytes:
        """Return the decoded file bytes."""
        if self.buffer is not None:
            return bytes(self.buffer)
        try:
            return base64.b64decode(self.data or "", validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("file data must be valid base64") from exc


class SendRequest(WireModel):
    """Payload of ``message:send``."""

    channel_id: str
    content: str = ""
    files: list[FileUpload] = Field(default_factory=list)
    reply_to: str | None = None
