# src/hookrelay/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .admin import router as admin_router
from .auth import router as auth_router
from .channels import router as channels_router
from .guilds import router as guilds_router

__all__ = [
    "admin_router",
    "auth_router",
    "channels_router",
    "guilds_router",
]
