from __future__ import annotations

from typing import Literal

ErrorCategory = Literal["input", "resolution", "delivery", "platform"]


class ModmailError(Exception):
    """Base class for every failure the relay reports back to a staff member."""

    category: ErrorCategory = "platform"
    user_message: str = "Something went wrong."

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.user_message)
        self.detail = detail


class EmptyBody(ModmailError):
    category = "input"
    user_message = "Message cannot be empty."


class NotAModmailChannel(ModmailError):
    category = "resolution"
    user_message = "This is not a modmail channel."


class UserNotFound(ModmailError):
    category = "resolution"
    user_message = "User not found."


class DeliveryFailed(ModmailError):
    """Direct delivery to the subject failed; recovered into a fallback notice."""

    category = "delivery"
    user_message = "Could not DM the user."


class ChannelPostFailed(ModmailError):
    category = "platform"
    user_message = "Failed to post in this thread. Check logs for details."


class SnippetNotFound(ModmailError):
    category = "input"
    user_message = "Snippet not found."


class UnbanFailed(ModmailError):
    category = "platform"
    user_message = "❌ Failed to unban the user. They may not be banned or the bot lacks permission."


__all__ = [
    "ChannelPostFailed",
    "DeliveryFailed",
    "EmptyBody",
    "ErrorCategory",
    "ModmailError",
    "NotAModmailChannel",
    "SnippetNotFound",
    "UnbanFailed",
    "UserNotFound",
]
