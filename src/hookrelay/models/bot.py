# src/hookrelay/models/bot.py
"""SQLAlchemy model for bot credentials registered at runtime."""

from datetime import datetime

from sqlalchemy import DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from hookrelay.db.session import Base
from hookrelay.db.time import utcnow


class RegisteredBot(Base):
    """Additional upstream bot added by an administrator.

    The primary bot comes from configuration and is never stored here.
    """

    __tablename__ = "registered_bot"

    bot_id: Mapped[str] = mapped_column(Text, primary_key=True)
    bot_token: Mapped[str] = mapped_column(Text, nullable=False)
    bot_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    added_by: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
