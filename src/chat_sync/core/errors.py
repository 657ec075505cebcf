"""Exception hierarchy for chat operations and the REST collaborator."""

from __future__ import annotations

from typing import Optional


class ChatError(Exception):
    """Base class for all chat-sync errors."""


class InvalidMessageError(ChatError, ValueError):
    """A message was rejected client-side, before any network call."""


class InvalidOperationError(ChatError):
    """The operation is not valid for the current state of the target."""


class MessageNotFoundError(InvalidOperationError):
    def __init__(self, message_id: str):
        super().__init__(f"Message not found: {message_id}")
        self.message_id = message_id


class PermissionDeniedError(ChatError):
    """The current user may not perform the operation (admin gating or HTTP 403)."""


class AuthenticationRequired(ChatError):
    """No usable bearer credential. Fatal for every chat operation."""


class ApiError(ChatError):
    """Non-2xx response from the REST collaborator."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class NotFoundError(ApiError):
    pass


class TransientApiError(ApiError):
    """Connection failure, timeout or 5xx; safe to retry later."""


class PayloadError(ApiError):
    """The collaborator answered with a body that cannot be decoded."""
