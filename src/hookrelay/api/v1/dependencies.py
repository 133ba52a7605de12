# src/hookrelay/api/v1/dependencies.py
"""Shared API dependencies for authentication and runtime access."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from hookrelay.core.errors import Forbidden, Unauthenticated
from hookrelay.core.security import decode_session_token
from hookrelay.core.settings import settings
from hookrelay.db.session import get_db
from hookrelay.models import UserSession
from hookrelay.services.runtime import RelayRuntime
from hookrelay.services.sessions import get_session_record

# Bearer is optional; browsers authenticate with the session cookie instead
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_runtime(request: Request) -> RelayRuntime:
    """Return the relay runtime attached to the running application."""
    runtime: RelayRuntime | None = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Relay is not running",
        )
    return runtime


RuntimeDep = Annotated[RelayRuntime, Depends(get_runtime)]


def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: SessionDep,
) -> UserSession:
    """Get the signed-in user from the session cookie or a bearer token.

    Raises:
        HTTPException: If the token is missing or invalid, or the session row is gone.
    """
    token = credentials.credentials if credentials else None
    if token is None:
        token = request.cookies.get(settings.session_cookie_name)

    try:
        user_id = decode_session_token(token)
    except Unauthenticated as err:
        raise err.to_http() from err

    record = get_session_record(db, user_id)
    if record is None:
        raise Unauthenticated("Session not found").to_http()
    return record


# Type alias for current user dependency
CurrentUserDep = Annotated[UserSession, Depends(get_current_user)]


def require_admin(current_user: CurrentUserDep) -> UserSession:
    """Allow only the configured administrator through."""
    if not settings.admin_user_id:
        raise Forbidden("Admin not configured").to_http()
    if current_user.user_id != settings.admin_user_id:
        raise Forbidden("Forbidden").to_http()
    return current_user


AdminDep = Annotated[UserSession, Depends(require_admin)]
