# src/hookrelay/models/webhook.py
"""SQLAlchemy model for cached per-channel proxy webhooks."""

from datetime import datetime

from sqlalchemy import DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from hookrelay.db.session import Base
from hookrelay.db.time import utcnow


class WebhookRecord(Base):
    """The webhook used to post into one channel; at most one per channel."""

    __tablename__ = "webhook_cache"

    channel_id: Mapped[str] = mapped_column(Text, primary_key=True)
    webhook_id: Mapped[str] = mapped_column(Text, nullable=False)
    webhook_token: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
