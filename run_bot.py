#!/usr/bin/env python3
"""
Entry point for running the modmail bot and its appeal endpoint.

Usage:
    python run_bot.py

Environment:
    - MODMAIL_TELEGRAM_TOKEN
    - MODMAIL_MODMAIL__STAFF_CHAT_ID
    - MODMAIL_API__SECRET (bearer token for POST /api/post-appeal)
    - MODMAIL_APPEALS__CHAT_ID, MODMAIL_APPEALS__COMMUNITY_CHAT_ID

The script loads configuration via BotSettings (reads .env by default), starts
the appeal HTTP server next to Telegram polling and shuts both down on Ctrl+C.
"""

import asyncio

from modmail_bot import TelegramModmailApp
from modmail_bot.config import BotSettings


async def _main() -> None:
    settings = BotSettings()
    app = TelegramModmailApp(settings)
    await app.run()


if __name__ == "__main__":
    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        print("\n\n🛑 Bot shutdown requested by user.")
