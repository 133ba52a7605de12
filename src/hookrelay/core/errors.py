# src/hookrelay/core/errors.py
"""Error taxonomy shared by the relay core and the API layers.

Every failure a subscriber or HTTP caller can observe is a ``RelayError``
subclass carrying a short machine-readable ``code``. Socket handlers turn them
into acknowledgement payloads, HTTP handlers into ``HTTPException``.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status


class RelayError(RuntimeError):
    """Base exception for relay failures surfaced to callers."""

    code: str = "RelayError"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Relay failure"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_ack(self) -> dict[str, Any]:
        """Return the acknowledgement payload for a realtime request."""
        return {"error": self.message, "code": self.code}

    def to_http(self) -> HTTPException:
        """Return an equivalent HTTP exception."""
        detail: dict[str, Any] = {"error": self.message, "code": self.code}
        return HTTPException(status_code=self.status_code, detail=detail)


class NotFound(RelayError):
    """A guild, channel, message or proxy endpoint does not exist."""

    code = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Forbidden(RelayError):
    """View, send or manage permission was denied."""

    code = "Forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "No access"


class RestrictedContentGate(Forbidden):
    """The channel is age-restricted and the user is not age verified."""

    code = "RestrictedContentGate"
    default_message = "Age verification required"


class InsufficientPermission(Forbidden):
    """The bot connection lacks the rights needed to manage webhooks."""

    code = "InsufficientPermission"
    default_message = "Bot lacks ManageWebhooks permission in this channel"


class Unauthenticated(RelayError):
    """The session credential is missing, invalid or expired."""

    code = "Unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"


class RateLimited(RelayError):
    """The subscriber exceeded its send allowance."""

    code = "RateLimited"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many messages, slow down"


class UpstreamUnavailable(RelayError):
    """The upstream platform failed or timed out."""

    code = "UpstreamUnavailable"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Upstream platform unavailable"


class DuplicateRegistration(RelayError):
    """A connection with the same id is already registered."""

    code = "DuplicateRegistration"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Connection already registered"


class ValidationFailed(RelayError):
    """The request payload is malformed."""

    code = "ValidationFailed"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"
