"""
Modmail relay bot core package.

Bridges private conversations between Telegram users and a staff forum chat:
one topic per case, staff replies relayed back (optionally under the team's
name), internal notes, and an authenticated HTTP intake for ban appeals.
"""

from .services.modmail_service import ModmailCoordinator
from .services.telegram_bot import TelegramModmailApp, telegram_app

__all__ = ["ModmailCoordinator", "TelegramModmailApp", "telegram_app"]
