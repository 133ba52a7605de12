# src/hookrelay/core/security.py
"""Session token helpers built on python-jose."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta
from http.cookies import CookieError, SimpleCookie

from jose import JWTError, jwt

from hookrelay.core.errors import Unauthenticated
from hookrelay.core.settings import settings


def create_session_token(user_id: str, username: str | None = None) -> str:
    """Issue a signed session token for a platform user id."""
    to_encode: dict[str, object] = {"sub": str(user_id)}
    if username:
        to_encode["username"] = username
    to_encode["exp"] = datetime.now(UTC) + timedelta(seconds=settings.session_ttl_seconds)
    encoded: str = jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return encoded


def decode_session_token(token: str | None) -> str:
    """Return the user id carried by ``token``.

    Raises:
        Unauthenticated: If the token is missing, malformed, expired or has no subject.
    """
    if not token:
        raise Unauthenticated("Not authenticated")
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as err:
        raise Unauthenticated("Invalid token") from err

    subject = payload.get("sub")
    if not subject:
        raise Unauthenticated("Invalid token")
    return str(subject)


def token_from_cookie_header(header: str | None, name: str | None = None) -> str | None:
    """Pull the session cookie out of a raw ``Cookie`` header."""
    if not header:
        return None
    cookie: SimpleCookie = SimpleCookie()
    try:
        cookie.load(header)
    except CookieError:
        return None
    morsel = cookie.get(name or settings.session_cookie_name)
    return morsel.value if morsel else None


def token_from_authorization(header: str | None) -> str | None:
    """Return the credential of a ``Bearer`` Authorization header."""
    if not header:
        return None
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() != "bearer" or not credentials:
        return None
    return credentials.strip()
