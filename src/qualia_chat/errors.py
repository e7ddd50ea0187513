"""Failure taxonomy for the conversation layer.

Every error carries the recovery action the user should take and a
human-readable message. Raw exception text is for logs only.
"""

from enum import Enum


class RecoveryAction(str, Enum):
    RETRY = "retry"
    WAIT = "wait"
    NEW_CONVERSATION = "new_conversation"


class ChatError(Exception):
    """Base class for conversation failures."""

    action: RecoveryAction = RecoveryAction.RETRY
    user_message: str = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None, *, user_message: str | None = None):
        super().__init__(message or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class ProviderUnavailable(ChatError):
    """Transport or upstream failure talking to the provider."""

    user_message = "The assistant service is unavailable. Please try again."

    def __init__(self, message: str | None = None, *, offline: bool = False, user_message: str | None = None):
        super().__init__(message, user_message=user_message)
        self.offline = offline


class ThreadNotFound(ChatError):
    """The provider has no record of the thread. Never retried."""

    action = RecoveryAction.NEW_CONVERSATION
    user_message = "This conversation no longer exists. Please start a new conversation."


class RunInProgress(ChatError):
    """A run is still active on the thread."""

    action = RecoveryAction.WAIT
    user_message = "Please wait, your previous message is still being processed."


class RunFailed(ChatError):
    """A run ended in a failure terminal status."""

    def __init__(self, status: str, message: str | None = None):
        self.status = status
        super().__init__(message or f"Run ended with status: {status}", user_message=_RUN_FAILED_MESSAGES.get(status))


_RUN_FAILED_MESSAGES = {
    "failed": "The assistant could not process your message. Please try again.",
    "cancelled": "Processing of your message was cancelled. Please try again.",
    "expired": "The assistant took too long to respond and the request expired. Please try again.",
}


class PollingTimeout(ChatError):
    """The client stopped waiting; the run may still finish server-side."""

    action = RecoveryAction.WAIT
    user_message = "The assistant is taking longer than expected. Please wait a moment and refresh."


class InitializationError(ChatError):
    """No conversation could be established."""

    user_message = "Failed to initialize chat. Please try again."


class CacheMiss(KeyError):
    """Internal signal that a cache lookup found nothing fresh."""
