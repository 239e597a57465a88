"""Exception hierarchy shared by the zkouska components."""

from __future__ import annotations

from typing import Optional

NO_PERMISSION_MESSAGE = "🔒 Potřebujete moderátorské oprávnění k vytvoření zkoušky!"
MISSING_DESCRIPTION_MESSAGE = "⚠️ Chybí popis! Použití: `{command} <popis>`"
CHANNEL_NOT_FOUND_MESSAGE = "❌ Chyba: Nelze najít cílový kanál."
CREATE_ERROR_MESSAGE = "❌ Chyba při vytváření zkoušky. Zkuste to prosím znovu."


class ZkouskaError(Exception):
    """Base class for all errors raised by zkouska_bot."""

    def __init__(self, message: str, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message


class ValidationError(ZkouskaError):
    """Raised when a command carries unusable input."""


class PermissionDenied(ZkouskaError):
    """Raised when the actor lacks the moderator capability."""


class NotFoundError(ZkouskaError):
    """Raised when a channel, thread or message no longer exists."""


class TransientExternalError(ZkouskaError):
    """Raised when a call to the chat platform fails."""


class CreationFailed(TransientExternalError):
    """Raised when announcement creation fails after something was posted."""


__all__ = [
    "NO_PERMISSION_MESSAGE",
    "MISSING_DESCRIPTION_MESSAGE",
    "CHANNEL_NOT_FOUND_MESSAGE",
    "CREATE_ERROR_MESSAGE",
    "ZkouskaError",
    "ValidationError",
    "PermissionDenied",
    "NotFoundError",
    "TransientExternalError",
    "CreationFailed",
]
