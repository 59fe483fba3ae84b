# roomcast/core/errors.py
"""
Error taxonomy for the chat core.

Every error a client can act on is a ``ChatError``. The WebSocket dispatcher
turns it into an ``error`` event sent only to the originating connection, and
the HTTP routes map it onto a status code.
"""

from __future__ import annotations


class ChatError(Exception):
    """Base class for user-actionable failures."""

    default_message = "Request failed"
    status_code = 400

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(ChatError):
    default_message = "Not found"
    status_code = 404


class RoomNotFound(NotFound):
    default_message = "Room not found"


class UserNotFound(NotFound):
    default_message = "Not authenticated"
    status_code = 401


class PermissionDenied(ChatError):
    default_message = "Permission denied"
    status_code = 403


class ValidationError(ChatError):
    default_message = "Invalid payload"
    status_code = 400
