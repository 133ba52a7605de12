# src/hookrelay/services/sessions.py
"""CRUD-style helpers for browser user sessions."""
from __future__ import annotations

from sqlalchemy.orm import Session

from hookrelay.models import UserSession

__all__ = [
    "get_session_record",
    "upsert_session",
    "set_age_verified",
    "delete_session",
]


def get_session_record(db: Session, user_id: str) -> UserSession | None:
    """Return the session row of a platform user."""
    return db.query(UserSession).filter(UserSession.user_id == user_id).first()


def upsert_session(
    db: Session,
    *,
    user_id: str,
    username: str,
    discriminator: str | None = None,
    avatar: str | None = None,
    global_name: str | None = None,
    access_token: str = "",
    refresh_token: str | None = None,
    token_expires_at: int | None = None,
) -> UserSession:
    """Create or refresh the session row written after a successful login.

    The age verification flag survives re-logins.
    """
    record = get_session_record(db, user_id)
    if record is None:
        record = UserSession(user_id=user_id, username=username)
        db.add(record)

    record.username = username
    record.discriminator = discriminator
    record.avatar = avatar
    record.global_name = global_name
    record.access_token = access_token
    record.refresh_token = refresh_token
    record.token_expires_at = token_expires_at
    db.commit()
    db.refresh(record)
    return record


def set_age_verified(db: Session, record: UserSession, verified: bool = True) -> UserSession:
    """Persist the user's age verification answer."""
    record.age_verified = verified
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def delete_session(db: Session, user_id: str) -> bool:
    """Remove a user's session row; returns whether one existed."""
    record = get_session_record(db, user_id)
    if record is None:
        return False
    db.delete(record)
    db.commit()
    return True
