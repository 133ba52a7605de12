# src/hookrelay/api/v1/endpoints/auth.py
"""Session endpoints for the signed-in browser user."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Response

from hookrelay.core.settings import settings
from hookrelay.schemas.user import UserResponse
from hookrelay.services.sessions import set_age_verified

from ..dependencies import CurrentUserDep, SessionDep

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me", response_model=UserResponse)
async def read_me(current_user: CurrentUserDep) -> UserResponse:
    """Return the profile stored for the current session."""
    return UserResponse(
        id=current_user.user_id,
        username=current_user.username,
        discriminator=current_user.discriminator,
        avatar=current_user.avatar,
        global_name=current_user.global_name,
        age_verified=bool(current_user.age_verified),
    )


@router.post("/age-verify")
async def verify_age(current_user: CurrentUserDep, db: SessionDep) -> dict[str, Any]:
    """Record that the user confirmed they may view age-restricted channels."""
    set_age_verified(db, current_user)
    return {"success": True}


@router.post("/logout")
async def logout(response: Response) -> dict[str, Any]:
    """Clear the session cookie."""
    response.delete_cookie(settings.session_cookie_name)
    return {"success": True}
