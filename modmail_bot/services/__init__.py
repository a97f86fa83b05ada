from .modmail_service import ModmailCoordinator
from .telegram_bot import TelegramModmailApp, telegram_app

__all__ = ["ModmailCoordinator", "TelegramModmailApp", "telegram_app"]
